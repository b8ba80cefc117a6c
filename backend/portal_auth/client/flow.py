"""Auth flow detection from the landing URL.

A page reached from a sign-in, recovery or invite link carries its flow in
the query string (``code``, ``type``, ``token``) or in the fragment
(``access_token``, ``refresh_token``, ``type``). The classification must be
computed once, synchronously, before anything asynchronous runs: session
notifications arriving later look the same for a recovery link and an
ordinary sign-in, and only the URL tells them apart.
"""

from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qs, parse_qsl, urlencode, urlsplit, urlunsplit


class AuthFlowKind(str, Enum):
    """Which redirect flow produced the current page load.

    Values:
        NONE: Fresh visit.
        RECOVERY: Password recovery link; continues to "set a new password".
        INVITE: Account invitation; continues to "set a new password".
        MAGICLINK: Password-less sign-in link.
        AUTHORIZATION_CODE: Bare one-time code to exchange for a session.
    """

    NONE = "none"
    RECOVERY = "recovery"
    INVITE = "invite"
    MAGICLINK = "magiclink"
    AUTHORIZATION_CODE = "authorization_code"


_TYPED_KINDS = {
    "recovery": AuthFlowKind.RECOVERY,
    "invite": AuthFlowKind.INVITE,
    "magiclink": AuthFlowKind.MAGICLINK,
}

# Query parameters consumed by a flow
_QUERY_AUTH_PARAMS = frozenset({"code", "type", "token"})
# Fragment keys that mark a fragment as carrying a session
_FRAGMENT_AUTH_PARAMS = frozenset(
    {"access_token", "refresh_token", "expires_in", "token_type", "type"}
)


@dataclass(frozen=True)
class AuthFlowContext:
    """Classification of the landing URL, immutable for the page's life.

    Attributes:
        kind: Detected flow.
        access_token: Fragment access token, if present.
        refresh_token: Fragment refresh token, if present.
        code: Query authorization code, if present.
        token: Query link token, if present.
        expires_in: Fragment access token lifetime, if present.
    """

    kind: AuthFlowKind = AuthFlowKind.NONE
    access_token: str | None = None
    refresh_token: str | None = None
    code: str | None = None
    token: str | None = None
    expires_in: int | None = None

    @property
    def requires_password(self) -> bool:
        """Recovery and invite flows must end on the password screen."""
        return self.kind in (AuthFlowKind.RECOVERY, AuthFlowKind.INVITE)

    @property
    def has_fragment_tokens(self) -> bool:
        return bool(self.access_token and self.refresh_token)


def _first(params: dict[str, list[str]], key: str) -> str | None:
    values = params.get(key)
    return values[0] if values and values[0] else None


def detect_auth_flow(url: str) -> AuthFlowContext:
    """Classify a landing URL. Pure; first matching rule wins.

    1. ``type`` is recovery/invite/magiclink and an access token, a code or
       a link token is present: that kind.
    2. ``code`` in the query and no ``type``: authorization code.
    3. Otherwise: none.

    Args:
        url: Full page URL, fragment included.

    Returns:
        AuthFlowContext with the kind and any raw credentials found.
    """
    parts = urlsplit(url)
    query = parse_qs(parts.query)
    fragment = parse_qs(parts.fragment)

    flow_type = _first(query, "type") or _first(fragment, "type")
    access_token = _first(fragment, "access_token")
    refresh_token = _first(fragment, "refresh_token")
    code = _first(query, "code")
    token = _first(query, "token")
    expires_raw = _first(fragment, "expires_in")
    expires_in = int(expires_raw) if expires_raw and expires_raw.isdigit() else None

    if flow_type in _TYPED_KINDS and (access_token or code or token):
        kind = _TYPED_KINDS[flow_type]
    elif code and flow_type is None:
        kind = AuthFlowKind.AUTHORIZATION_CODE
    else:
        kind = AuthFlowKind.NONE

    return AuthFlowContext(
        kind=kind,
        access_token=access_token,
        refresh_token=refresh_token,
        code=code,
        token=token,
        expires_in=expires_in,
    )


def strip_auth_params(url: str) -> str:
    """Remove consumed flow parameters so a reload does not replay the flow.

    Drops ``code``, ``type`` and ``token`` from the query and a fragment that
    carried session parameters. Other query parameters and an ordinary
    fragment (e.g. an in-page anchor) are kept.
    """
    parts = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in _QUERY_AUTH_PARAMS
    ]
    fragment_keys = {key for key, _ in parse_qsl(parts.fragment)}
    fragment = "" if fragment_keys & _FRAGMENT_AUTH_PARAMS else parts.fragment
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(query), fragment)
    )
