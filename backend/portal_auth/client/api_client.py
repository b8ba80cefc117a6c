"""HTTP client for the Portal Auth API.

PortalClient wraps an ``httpx.AsyncClient``: verification calls (lookup,
send code, verify code) and identity platform calls (link redemption,
code exchange, refresh, password update, sign out). It keeps the current
session in memory and notifies listeners of session changes.
"""

import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx

from portal_auth.client.errors import (
    ERROR_CODE_MAP,
    PortalError,
    SessionExchangeError,
    TransportError,
    UnauthorizedError,
)
from portal_auth.client.models import (
    AuthEvent,
    ClientMatch,
    Session,
    SessionUser,
    VerificationOutcome,
)

logger = logging.getLogger(__name__)

AuthListener = Callable[[AuthEvent, Session | None], None]

_DEFAULT_TIMEOUT = 10.0

_PASSWORD_LINK_TYPES = frozenset({"recovery", "invite"})


def _raise_for_envelope(response: httpx.Response) -> None:
    """Raise the PortalError subclass matching an error response."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    # Auth dependencies report through HTTPException ({"detail": {...}})
    error = (body.get("error") or body.get("detail")) if isinstance(body, dict) else None
    if not isinstance(error, dict):
        error = {}
    code = error.get("code", "HTTP_ERROR")
    message = error.get("message", response.reason_phrase or "Request failed")
    error_cls = ERROR_CODE_MAP.get(code, PortalError)
    raise error_cls(code, message, response.status_code)


class PortalClient:
    """Async client for the Portal Auth API.

    Args:
        base_url: Server origin, e.g. ``https://portal.example.com``.
        http_client: Pre-configured client (tests pass one bound to an
            ASGI transport). Owned by the caller when given.
        timeout: Request timeout in seconds for the internal client.
    """

    def __init__(
        self,
        base_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout
        )
        self._api = f"{base_url.rstrip('/')}/api/v1"
        self._session: Session | None = None
        self._listeners: list[AuthListener] = []

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the internal HTTP client (not a caller-supplied one)."""
        if self._owns_client:
            await self._http.aclose()

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        access_token: str | None = None,
    ) -> Any:
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            response = await self._http.request(
                method, f"{self._api}{path}", json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            logger.warning("Portal API request failed: %s %s", method, path)
            raise TransportError() from exc

        if response.status_code >= 400:
            _raise_for_envelope(response)
        return response.json().get("data")

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """Subscribe to session changes.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: AuthEvent) -> None:
        for listener in list(self._listeners):
            listener(event, self._session)

    def _install(self, session: Session, event: AuthEvent) -> Session:
        self._session = session
        self._emit(event)
        return session

    def _require_session(self) -> Session:
        if self._session is None:
            raise UnauthorizedError("UNAUTHORIZED", "Authentication required", 401)
        return self._session

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    async def lookup_client(
        self,
        *,
        code: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> ClientMatch | None:
        """Resolve one identifier to a client, or None."""
        body = {
            key: value
            for key, value in (("code", code), ("email", email), ("phone", phone))
            if value is not None
        }
        data = await self._request("POST", "/clients/lookup", json=body)
        return ClientMatch.from_payload(data) if data else None

    async def send_code(
        self, *, email: str, purpose: str, display_name: str | None = None
    ) -> None:
        """Ask the server to issue and email a verification code."""
        body: dict[str, Any] = {"email": email, "purpose": purpose}
        if display_name:
            body["display_name"] = display_name
        await self._request("POST", "/verification/codes", json=body)

    async def verify_code(
        self, *, email: str, code: str, purpose: str
    ) -> VerificationOutcome:
        """Validate a verification code."""
        data = await self._request(
            "POST",
            "/verification/codes/verify",
            json={"email": email, "code": code, "purpose": purpose},
        )
        return VerificationOutcome(
            verified=bool(data.get("verified")),
            session_artifact=data.get("session_artifact"),
        )

    # -------------------------------------------------------------------------
    # Identity platform
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session | None:
        return self._session

    async def get_session(self) -> Session | None:
        """Return the session held by this client, if any."""
        return self._session

    async def exchange_code_for_session(self, code: str) -> Session:
        """Trade a one-time authorization code for a session."""
        data = await self._request(
            "POST",
            "/auth/token",
            json={"grant_type": "authorization_code", "code": code},
        )
        session = Session.from_payload(data)
        event = (
            AuthEvent.PASSWORD_RECOVERY
            if session.link_type in _PASSWORD_LINK_TYPES
            else AuthEvent.SIGNED_IN
        )
        return self._install(session, event)

    async def set_session(
        self,
        access_token: str,
        refresh_token: str,
        *,
        expires_in: int | None = None,
        link_type: str | None = None,
    ) -> Session:
        """Install a token pair found in a redirect fragment.

        The access token is checked against /auth/me before it is kept.
        """
        user = await self._request("GET", "/auth/me", access_token=access_token)
        session = Session(
            access_token=access_token,
            refresh_token=refresh_token,
            user=SessionUser.from_payload(user),
            expires_in=expires_in,
            link_type=link_type,
        )
        return self._install(session, AuthEvent.SIGNED_IN)

    async def verify_link(self, action_link: str) -> Session:
        """Redeem a sign-in link (e.g. a login verification artifact).

        Raises:
            SessionExchangeError: The link is malformed or was rejected.
        """
        query = parse_qs(urlsplit(action_link).query)
        token = query.get("token", [None])[0]
        link_type = query.get("type", [None])[0]
        if not token or not link_type:
            raise SessionExchangeError(
                "SESSION_EXCHANGE_FAILED", "Unable to establish a session"
            )
        body: dict[str, Any] = {"token": token, "type": link_type}
        identifier = query.get("identifier", [None])[0]
        if identifier:
            body["identifier"] = identifier
        data = await self._request("POST", "/auth/verify", json=body)
        session = Session.from_payload(data)
        event = (
            AuthEvent.PASSWORD_RECOVERY
            if session.link_type in _PASSWORD_LINK_TYPES
            else AuthEvent.SIGNED_IN
        )
        return self._install(session, event)

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        """Sign in with email and password."""
        data = await self._request(
            "POST",
            "/auth/token",
            json={"grant_type": "password", "email": email, "password": password},
        )
        return self._install(Session.from_payload(data), AuthEvent.SIGNED_IN)

    async def refresh_session(self) -> Session:
        """Rotate the current session's token pair."""
        current = self._require_session()
        data = await self._request(
            "POST",
            "/auth/token",
            json={"grant_type": "refresh_token", "refresh_token": current.refresh_token},
        )
        return self._install(Session.from_payload(data), AuthEvent.TOKEN_REFRESHED)

    async def update_password(
        self, new_password: str, *, current_password: str | None = None
    ) -> Session:
        """Set a new password; the server returns a fresh session."""
        current = self._require_session()
        body: dict[str, Any] = {"new_password": new_password}
        if current_password:
            body["current_password"] = current_password
        data = await self._request(
            "PUT", "/auth/password", json=body, access_token=current.access_token
        )
        return self._install(Session.from_payload(data), AuthEvent.USER_UPDATED)

    async def sign_out(self) -> None:
        """End the session locally and on the server.

        The local session is dropped even if the server call fails.
        """
        current = self._session
        self._session = None
        if current is not None:
            try:
                await self._request(
                    "POST", "/auth/logout", access_token=current.access_token
                )
            except PortalError:
                logger.warning("Server-side sign out failed", exc_info=True)
        self._emit(AuthEvent.SIGNED_OUT)
