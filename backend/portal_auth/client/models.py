"""Value objects returned by the client SDK.

Mirrors the JSON payloads of the Portal Auth API. Plain frozen
dataclasses; no validation beyond what the server already did.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class AuthEvent(str, Enum):
    """Session change notifications emitted by PortalClient.

    Values:
        SIGNED_IN: A session was established or installed.
        SIGNED_OUT: The session was discarded.
        TOKEN_REFRESHED: The access/refresh pair was rotated.
        PASSWORD_RECOVERY: A recovery session was established.
        USER_UPDATED: The user changed (e.g. a new password was set).
    """

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    USER_UPDATED = "USER_UPDATED"


@dataclass(frozen=True)
class SessionUser:
    """User attached to a session.

    Attributes:
        id: User UUID string.
        email: Account email.
        name: Display name, if any.
        is_client: Belongs to the client portal population.
    """

    id: str
    email: str
    name: str | None = None
    is_client: bool = False

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "SessionUser":
        return cls(
            id=str(data["id"]),
            email=data["email"],
            name=data.get("name"),
            is_client=bool(data.get("is_client", False)),
        )


@dataclass(frozen=True)
class Session:
    """A live session.

    Attributes:
        access_token: Bearer JWT.
        refresh_token: Token exchanged for a new pair.
        user: Signed-in user.
        expires_in: Access token lifetime in seconds, when known.
        token_type: Always ``bearer``.
        link_type: Link that produced the session (``recovery``, ``invite``,
            ``magiclink``), when there was one.
    """

    access_token: str
    refresh_token: str
    user: SessionUser
    expires_in: int | None = None
    token_type: str = "bearer"
    link_type: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Session":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            user=SessionUser.from_payload(data["user"]),
            expires_in=data.get("expires_in"),
            token_type=data.get("token_type", "bearer"),
            link_type=data.get("type"),
        )


@dataclass(frozen=True)
class ClientMatch:
    """A resolved client identity from POST /clients/lookup.

    ``email`` is the full address needed to request and check a code;
    interfaces should display ``masked_email`` / ``masked_phone`` only.
    """

    code: str
    name: str
    email: str
    masked_email: str
    masked_phone: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ClientMatch":
        return cls(
            code=data["code"],
            name=data["name"],
            email=data["email"],
            masked_email=data["masked_email"],
            masked_phone=data.get("masked_phone"),
        )


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of POST /verification/codes/verify."""

    verified: bool
    session_artifact: str | None = None
