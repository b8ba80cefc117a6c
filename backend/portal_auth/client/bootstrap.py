"""Session bootstrap for the client portal.

Turns whatever flow brought the visitor here into one outcome: a ready
session, the "set a new password" screen, or the identify-yourself UI.
The AuthFlowContext is computed from the URL before the bootstrapper is
built and is only ever consulted, never re-derived from session state.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from portal_auth.client.errors import PortalError
from portal_auth.client.flow import AuthFlowContext, AuthFlowKind, strip_auth_params
from portal_auth.client.models import AuthEvent, Session

logger = logging.getLogger(__name__)

_CODE_FLOW_KINDS = frozenset(
    {
        AuthFlowKind.AUTHORIZATION_CODE,
        AuthFlowKind.RECOVERY,
        AuthFlowKind.INVITE,
        AuthFlowKind.MAGICLINK,
    }
)


class BootstrapState(str, Enum):
    """Where the portal should go after bootstrap.

    Values:
        READY: A client session exists; enter the portal.
        NEEDS_PASSWORD: Recovery/invite continuation; show the password form.
        IDENTIFY: No usable session; show the identify-yourself UI.
    """

    READY = "ready"
    NEEDS_PASSWORD = "needs_password"
    IDENTIFY = "identify"


@dataclass(frozen=True)
class BootstrapResult:
    """Terminal outcome of a bootstrap run.

    Attributes:
        state: Where to route the visitor.
        session: The session, when one exists and was kept.
        cleaned_url: URL with consumed flow parameters removed, when the
            page URL should be replaced; None if nothing was consumed.
    """

    state: BootstrapState
    session: Session | None = None
    cleaned_url: str | None = None


class SessionPlatform(Protocol):
    """Identity platform calls the bootstrapper needs (PortalClient)."""

    async def get_session(self) -> Session | None: ...

    async def exchange_code_for_session(self, code: str) -> Session: ...

    async def set_session(
        self,
        access_token: str,
        refresh_token: str,
        *,
        expires_in: int | None = None,
        link_type: str | None = None,
    ) -> Session: ...

    async def sign_in_with_password(self, email: str, password: str) -> Session: ...

    async def sign_out(self) -> None: ...


class SessionBootstrapper:
    """Runs once per page load.

    Args:
        platform: Identity platform client.
        context: Flow detected from the landing URL.
        url: The landing URL, used to compute ``cleaned_url``.
    """

    def __init__(
        self,
        platform: SessionPlatform,
        context: AuthFlowContext,
        url: str | None = None,
    ) -> None:
        self._platform = platform
        self._context = context
        self._url = url
        # Latched from the URL up front; only password_updated() releases it
        self._needs_password = context.requires_password

    @property
    def context(self) -> AuthFlowContext:
        return self._context

    @property
    def needs_password(self) -> bool:
        return self._needs_password

    async def run(self) -> BootstrapResult:
        """Establish the session for this page load.

        Exchange failures are not raised; they fall through to the next
        step and, in the end, to IDENTIFY.
        """
        ctx = self._context
        session: Session | None = None
        consumed = False

        # 1. Codes are exchanged only for a recognised flow
        if ctx.code and ctx.kind in _CODE_FLOW_KINDS:
            try:
                session = await self._platform.exchange_code_for_session(ctx.code)
                consumed = True
            except PortalError as exc:
                logger.info("Authorization code exchange failed: %s", exc.code)

        if session is None:
            session = await self._platform.get_session()

        # 2. Fragment tokens only when nothing produced a session yet
        if session is None and ctx.has_fragment_tokens:
            try:
                session = await self._platform.set_session(
                    ctx.access_token or "",
                    ctx.refresh_token or "",
                    expires_in=ctx.expires_in,
                    link_type=(
                        ctx.kind.value if ctx.kind != AuthFlowKind.NONE else None
                    ),
                )
                consumed = True
            except PortalError as exc:
                logger.info("Installing fragment session failed: %s", exc.code)

        cleaned_url = strip_auth_params(self._url) if consumed and self._url else None

        # 3. Recovery/invite always ends on the password form
        if ctx.requires_password:
            self._needs_password = True
            return BootstrapResult(
                state=BootstrapState.NEEDS_PASSWORD,
                session=session,
                cleaned_url=cleaned_url,
            )

        # 4. Only the client population may enter
        if session is not None:
            if session.user.is_client:
                return BootstrapResult(
                    state=BootstrapState.READY,
                    session=session,
                    cleaned_url=cleaned_url,
                )
            logger.info("Rejected non-client session")
            await self._platform.sign_out()

        # 5. Nothing applies
        return BootstrapResult(state=BootstrapState.IDENTIFY, cleaned_url=cleaned_url)

    def handle_auth_event(
        self, event: AuthEvent, session: Session | None
    ) -> BootstrapState:
        """Route a session notification that arrived after bootstrap.

        The precomputed flow context wins over whatever the session looks
        like: a recovery/invite page never routes to READY, however the
        notification reads. A non-client session yields IDENTIFY; the
        caller is expected to sign it out.
        """
        if event == AuthEvent.PASSWORD_RECOVERY:
            self._needs_password = True
        if self._needs_password:
            return BootstrapState.NEEDS_PASSWORD

        if event == AuthEvent.SIGNED_OUT or session is None:
            return BootstrapState.IDENTIFY
        if session.user.is_client:
            return BootstrapState.READY
        return BootstrapState.IDENTIFY

    def password_updated(self, session: Session | None) -> BootstrapState:
        """Release the password latch after a successful password update."""
        self._needs_password = False
        if session is not None and session.user.is_client:
            return BootstrapState.READY
        return BootstrapState.IDENTIFY

    async def sign_in_with_password(self, email: str, password: str) -> BootstrapResult:
        """Password sign-in from the portal login form.

        Sessions outside the client population are signed out again.

        Raises:
            PortalError: The platform rejected the credentials.
        """
        session = await self._platform.sign_in_with_password(email, password)
        if not session.user.is_client:
            logger.info("Rejected non-client password sign-in")
            await self._platform.sign_out()
            return BootstrapResult(state=BootstrapState.IDENTIFY)
        return BootstrapResult(state=BootstrapState.READY, session=session)
