"""Client-side state machine for identifying a visitor without a password.

States: LOOKUP -> OTP_SENT -> VERIFIED. ``cancel`` and ``change_identity``
return to LOOKUP. The machine owns the resend cooldown (an asyncio task
ticking once per second) and tears it down on ``aclose``.

Every network step is guarded: a second submission while one is in
flight is ignored, and a response that arrives after the visitor cancelled
or changed identity is discarded.

The resolved identity stays private until VERIFIED; before that only the
masked email and phone are exposed.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from portal_auth.client.errors import (
    DefectError,
    DeliveryError,
    InvalidCodeError,
    PortalError,
    SessionExchangeError,
)
from portal_auth.client.models import ClientMatch, VerificationOutcome

logger = logging.getLogger(__name__)

CODE_LENGTH = 6
DEFAULT_COOLDOWN_SECONDS = 60


class VerificationState(str, Enum):
    """Verification progress.

    Values:
        LOOKUP: Waiting for an identifier.
        OTP_SENT: Code emailed; waiting for it to be typed.
        VERIFIED: Code accepted; the identity is usable.
    """

    LOOKUP = "lookup"
    OTP_SENT = "otp_sent"
    VERIFIED = "verified"


class FailureKind(str, Enum):
    """User-facing failure categories.

    Values:
        NOT_FOUND: Identifier matched no client.
        INVALID_CODE: Wrong, used, expired or never-issued code.
        DELIVERY_FAILURE: The code email could not be sent.
        SESSION_EXCHANGE_FAILURE: Code accepted but no session artifact.
        DEFECT: Server-side contract or data violation.
        UNAVAILABLE: Network error or rate limit; retry later.
    """

    NOT_FOUND = "not_found"
    INVALID_CODE = "invalid_code"
    DELIVERY_FAILURE = "delivery_failure"
    SESSION_EXCHANGE_FAILURE = "session_exchange_failure"
    DEFECT = "defect"
    UNAVAILABLE = "unavailable"


_FAILURE_KINDS: dict[type[PortalError], FailureKind] = {
    InvalidCodeError: FailureKind.INVALID_CODE,
    DeliveryError: FailureKind.DELIVERY_FAILURE,
    SessionExchangeError: FailureKind.SESSION_EXCHANGE_FAILURE,
    DefectError: FailureKind.DEFECT,
}

_NOT_FOUND_MESSAGE = "No client found with this identifier"
_INVALID_CODE_MESSAGE = "Invalid or expired code"
_DEFECT_MESSAGE = "Something went wrong, please try again later"


@dataclass(frozen=True)
class VerificationFailure:
    """Last failure, for display. Never changes the state."""

    kind: FailureKind
    message: str


def _failure_from(exc: PortalError) -> VerificationFailure:
    kind = _FAILURE_KINDS.get(type(exc), FailureKind.UNAVAILABLE)
    if kind == FailureKind.DEFECT:
        logger.error("Verification defect reported by server: %s", exc.code)
        return VerificationFailure(kind, _DEFECT_MESSAGE)
    return VerificationFailure(kind, exc.message)


class VerificationApi(Protocol):
    """Server calls the state machine needs (PortalClient)."""

    async def lookup_client(
        self,
        *,
        code: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> ClientMatch | None: ...

    async def send_code(
        self, *, email: str, purpose: str, display_name: str | None = None
    ) -> None: ...

    async def verify_code(
        self, *, email: str, code: str, purpose: str
    ) -> VerificationOutcome: ...


class VerificationStateMachine:
    """Drives lookup, code entry and verification for one visitor.

    Args:
        api: Server client.
        purpose: Code purpose (``contact_verification`` or ``login``).
        cooldown_seconds: Resend cooldown started on entering OTP_SENT.
        tick_interval: Seconds between cooldown ticks.
        auto_tick: Run the cooldown task. Disable to drive ``tick()`` by hand.
    """

    def __init__(
        self,
        api: VerificationApi,
        *,
        purpose: str = "contact_verification",
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        tick_interval: float = 1.0,
        auto_tick: bool = True,
    ) -> None:
        self._api = api
        self._purpose = purpose
        self._cooldown_seconds = cooldown_seconds
        self._tick_interval = tick_interval
        self._auto_tick = auto_tick

        self._state = VerificationState.LOOKUP
        self._identity: ClientMatch | None = None
        self._cooldown = 0
        self._code_input = ""
        self._session_artifact: str | None = None
        self._error: VerificationFailure | None = None
        self._pending = False
        # Bumped whenever in-flight responses must be ignored
        self._epoch = 0
        self._timer: asyncio.Task[None] | None = None
        self._closed = False

    # -------------------------------------------------------------------------
    # Observable state
    # -------------------------------------------------------------------------

    @property
    def state(self) -> VerificationState:
        return self._state

    @property
    def error(self) -> VerificationFailure | None:
        return self._error

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def cooldown(self) -> int:
        return self._cooldown

    @property
    def can_resend(self) -> bool:
        return (
            self._state == VerificationState.OTP_SENT
            and self._cooldown == 0
            and not self._pending
        )

    @property
    def code_input(self) -> str:
        return self._code_input

    @property
    def masked_email(self) -> str | None:
        return self._identity.masked_email if self._identity else None

    @property
    def masked_phone(self) -> str | None:
        return self._identity.masked_phone if self._identity else None

    @property
    def identity(self) -> ClientMatch | None:
        """The full resolved identity, only once VERIFIED."""
        if self._state != VerificationState.VERIFIED:
            return None
        return self._identity

    @property
    def session_artifact(self) -> str | None:
        """Sign-in link returned for login codes, once VERIFIED."""
        return self._session_artifact

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _begin(self) -> int | None:
        """Enter a guarded network step; None if one is already running."""
        if self._pending or self._closed:
            return None
        self._pending = True
        self._error = None
        return self._epoch

    def _current(self, epoch: int) -> bool:
        return epoch == self._epoch

    def _finish(self, epoch: int) -> None:
        if self._current(epoch):
            self._pending = False

    async def lookup(
        self,
        *,
        code: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> VerificationState:
        """Resolve an identifier and email a code to the match.

        Stays in LOOKUP with NOT_FOUND when nothing matches.
        """
        if self._state != VerificationState.LOOKUP:
            return self._state
        epoch = self._begin()
        if epoch is None:
            return self._state

        try:
            match = await self._api.lookup_client(code=code, email=email, phone=phone)
            if not self._current(epoch):
                return self._state
            if match is None:
                self._error = VerificationFailure(
                    FailureKind.NOT_FOUND, _NOT_FOUND_MESSAGE
                )
                return self._state

            await self._api.send_code(
                email=match.email, purpose=self._purpose, display_name=match.name
            )
            if not self._current(epoch):
                return self._state

            self._identity = match
            self._code_input = ""
            self._state = VerificationState.OTP_SENT
            self._start_cooldown()
        except PortalError as exc:
            if self._current(epoch):
                self._error = _failure_from(exc)
        finally:
            self._finish(epoch)
        return self._state

    def set_code_input(self, value: str) -> None:
        """Update the code field, keeping at most six digits."""
        self._code_input = "".join(ch for ch in value if ch.isdigit())[:CODE_LENGTH]

    async def submit_code(self, code: str | None = None) -> VerificationState:
        """Validate the typed code.

        On failure the state stays OTP_SENT, the code field is cleared and
        the cooldown is left exactly as it was.
        """
        if code is not None:
            self.set_code_input(code)
        if self._state != VerificationState.OTP_SENT or self._identity is None:
            return self._state
        epoch = self._begin()
        if epoch is None:
            return self._state

        submitted = self._code_input
        try:
            if len(submitted) != CODE_LENGTH:
                self._error = VerificationFailure(
                    FailureKind.INVALID_CODE, _INVALID_CODE_MESSAGE
                )
                self._code_input = ""
                return self._state

            outcome = await self._api.verify_code(
                email=self._identity.email, code=submitted, purpose=self._purpose
            )
            if not self._current(epoch):
                return self._state
            if not outcome.verified:
                self._error = VerificationFailure(
                    FailureKind.INVALID_CODE, _INVALID_CODE_MESSAGE
                )
                self._code_input = ""
                return self._state

            self._session_artifact = outcome.session_artifact
            self._state = VerificationState.VERIFIED
            self._stop_cooldown()
            self._cooldown = 0
        except PortalError as exc:
            if self._current(epoch):
                self._error = _failure_from(exc)
                self._code_input = ""
        finally:
            self._finish(epoch)
        return self._state

    async def resend(self) -> VerificationState:
        """Email a fresh code once the cooldown has run out.

        The new code voids the previous one server-side.
        """
        if not self.can_resend or self._identity is None:
            return self._state
        epoch = self._begin()
        if epoch is None:
            return self._state

        try:
            await self._api.send_code(
                email=self._identity.email,
                purpose=self._purpose,
                display_name=self._identity.name,
            )
            if self._current(epoch):
                self._code_input = ""
                self._start_cooldown()
        except PortalError as exc:
            if self._current(epoch):
                self._error = _failure_from(exc)
        finally:
            self._finish(epoch)
        return self._state

    def _reset(self) -> None:
        self._epoch += 1
        self._stop_cooldown()
        self._state = VerificationState.LOOKUP
        self._identity = None
        self._cooldown = 0
        self._code_input = ""
        self._session_artifact = None
        self._error = None
        self._pending = False

    def cancel(self) -> None:
        """Abandon the current code and return to LOOKUP."""
        self._reset()

    def change_identity(self) -> None:
        """Leave VERIFIED (or OTP_SENT) to identify as someone else."""
        self._reset()

    # -------------------------------------------------------------------------
    # Cooldown
    # -------------------------------------------------------------------------

    def tick(self) -> None:
        """Advance the resend cooldown by one second."""
        if self._cooldown > 0:
            self._cooldown -= 1

    def _start_cooldown(self) -> None:
        self._stop_cooldown()
        self._cooldown = self._cooldown_seconds
        if self._auto_tick and self._cooldown > 0:
            self._timer = asyncio.create_task(self._run_cooldown())

    def _stop_cooldown(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _run_cooldown(self) -> None:
        while self._cooldown > 0:
            await asyncio.sleep(self._tick_interval)
            self.tick()

    async def aclose(self) -> None:
        """Tear down: stop the cooldown task and ignore in-flight responses."""
        self._closed = True
        self._epoch += 1
        timer = self._timer
        self._stop_cooldown()
        if timer is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await timer
