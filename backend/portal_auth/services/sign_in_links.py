"""Identity platform: sign-in links, authorization codes and sessions.

The verification service and the admin invitation flow ask this module
for single-use links. A link resolves (once) to a session; depending on
the configured flow type the session is delivered in the redirect
fragment (implicit) or as a one-time authorization code in the query
string (pkce) that the client trades at /auth/token.

Recovery and invite sessions carry the password-reset claim so the
visitor can set a password without knowing the current one.
"""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.core.auth import (
    SessionTokens,
    check_password,
    decode_refresh_token,
    hash_link_token,
    issue_session,
)
from portal_auth.core.config import settings
from portal_auth.core.errors import SessionExchangeError
from portal_auth.models.user import User
from portal_auth.models.verification_token import LinkType
from portal_auth.repositories.user_repository import UserRepository
from portal_auth.repositories.verification_token_repository import (
    VerificationTokenRepository,
)

logger = logging.getLogger(__name__)

# Link types whose session must continue to "set a new password"
PASSWORD_SETTING_LINKS = frozenset({LinkType.RECOVERY, LinkType.INVITE})

_LINK_TYPES = (LinkType.MAGICLINK, LinkType.RECOVERY, LinkType.INVITE)


@dataclass(frozen=True)
class PlatformSession:
    """A freshly established session.

    Attributes:
        user: The signed-in user.
        tokens: Access/refresh pair.
        link_type: Link that produced the session, if any.
    """

    user: User
    tokens: SessionTokens
    link_type: LinkType | None = None

    def to_payload(self) -> dict:
        """Serialize as the JSON session object returned to clients."""
        payload: dict = {
            "access_token": self.tokens.access_token,
            "refresh_token": self.tokens.refresh_token,
            "expires_in": self.tokens.expires_in,
            "token_type": self.tokens.token_type,
            "user": user_payload(self.user),
        }
        if self.link_type is not None:
            payload["type"] = self.link_type.value
        return payload


def user_payload(user: User) -> dict:
    """Public user fields shared by sessions and /auth/me."""
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "is_client": user.is_client,
        "email_verified": user.email_verified is not None,
        "has_password": user.password_hash is not None,
    }


def _as_utc(value: datetime) -> datetime:
    # Some backends hand timestamps back without tzinfo; they are UTC
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _link_ttl(link_type: LinkType) -> timedelta:
    if link_type == LinkType.INVITE:
        return timedelta(hours=settings.invite_token_ttl_hours)
    return timedelta(minutes=settings.link_token_ttl_minutes)


def start_session(user: User, link_type: LinkType | None = None) -> PlatformSession:
    """Issue a session; recovery/invite links add the password-reset claim."""
    tokens = issue_session(
        user_id=str(user.id),
        email=user.email,
        is_client=user.is_client,
        password_reset=link_type in PASSWORD_SETTING_LINKS,
    )
    return PlatformSession(user=user, tokens=tokens, link_type=link_type)


# ===================================================================
# Redirect targets
# ===================================================================


def safe_redirect_target(redirect_to: str | None) -> str:
    """Return ``redirect_to`` if it points at the frontend, else the portal.

    Security: prevents open redirects through the link's redirect_to.
    """
    if redirect_to:
        base = settings.frontend_url.rstrip("/")
        if redirect_to == base or redirect_to.startswith(f"{base}/"):
            return redirect_to
    return settings.portal_url


def implicit_redirect_url(target: str, session: PlatformSession) -> str:
    """Redirect URL carrying the session in the fragment."""
    params = {
        "access_token": session.tokens.access_token,
        "refresh_token": session.tokens.refresh_token,
        "expires_in": session.tokens.expires_in,
        "token_type": session.tokens.token_type,
    }
    if session.link_type is not None:
        params["type"] = session.link_type.value
    return f"{target.split('#', 1)[0]}#{urlencode(params)}"


def code_redirect_url(target: str, code: str, link_type: LinkType) -> str:
    """Redirect URL carrying a one-time authorization code in the query.

    Password-setting links also carry ``type`` so the client can route
    to the password screen before the exchange completes.
    """
    params = {"code": code}
    if link_type in PASSWORD_SETTING_LINKS:
        params["type"] = link_type.value
    base, _, fragment = target.partition("#")
    separator = "&" if "?" in base else "?"
    url = f"{base}{separator}{urlencode(params)}"
    return f"{url}#{fragment}" if fragment else url


# ===================================================================
# Links
# ===================================================================


async def generate_link(
    db: AsyncSession,
    *,
    email: str,
    link_type: LinkType,
    redirect_to: str | None = None,
) -> str:
    """Mint a single-use link for an existing account.

    The token is stored hashed; the plain value only exists in the
    returned URL. The caller commits.

    Args:
        db: Async database session.
        email: Account email.
        link_type: magiclink, recovery or invite.
        redirect_to: Frontend URL to land on after verification.

    Returns:
        Absolute action link pointing at GET /api/v1/auth/verify.

    Raises:
        SessionExchangeError: No account exists for the email.
    """
    if link_type not in _LINK_TYPES:
        msg = f"Not a link type: {link_type}"
        raise ValueError(msg)

    email = email.strip().lower()
    user = await UserRepository.get_by_email(db, email)
    if user is None:
        logger.info("Link requested for an email with no account")
        raise SessionExchangeError()

    plain = secrets.token_urlsafe(32)
    await VerificationTokenRepository.create(
        db,
        identifier=email,
        token_hash=hash_link_token(plain),
        expires=datetime.now(UTC) + _link_ttl(link_type),
        purpose=link_type,
    )

    query = {
        "token": plain,
        "type": link_type.value,
        "identifier": email,
        "redirect_to": safe_redirect_target(redirect_to),
    }
    return f"{settings.backend_url.rstrip('/')}/api/v1/auth/verify?{urlencode(query)}"


async def verify_link(
    db: AsyncSession,
    *,
    token: str,
    link_type: LinkType,
    identifier: str | None = None,
) -> PlatformSession:
    """Redeem a link token for a session.

    Single-use: the token is deleted on success. The link type must match
    the one stored at creation, so a magic link cannot be replayed as a
    recovery link. The caller commits.

    Raises:
        SessionExchangeError: Unknown, expired or mismatched token, or
            the account no longer exists.
    """
    if link_type not in _LINK_TYPES:
        raise SessionExchangeError()

    token_hash = hash_link_token(token)
    vt = await VerificationTokenRepository.get_valid(
        db,
        token_hash=token_hash,
        purpose=link_type,
        identifier=identifier.strip().lower() if identifier else None,
    )
    if vt is None:
        raise SessionExchangeError()

    await VerificationTokenRepository.delete(
        db, identifier=vt.identifier, token_hash=token_hash
    )

    user = await UserRepository.get_by_email(db, vt.identifier)
    if user is None:
        raise SessionExchangeError()

    # Opening the link proves the mailbox
    await UserRepository.mark_email_verified(db, user, datetime.now(UTC))

    return start_session(user, link_type)


# ===================================================================
# Authorization codes
# ===================================================================


async def create_authorization_code(
    db: AsyncSession, *, user: User, link_type: LinkType
) -> str:
    """Mint a one-time authorization code for a verified link.

    Returns:
        The plain code. Only its hash is stored.
    """
    plain = secrets.token_urlsafe(24)
    await VerificationTokenRepository.create(
        db,
        identifier=user.email,
        token_hash=hash_link_token(plain),
        expires=datetime.now(UTC)
        + timedelta(minutes=settings.authorization_code_ttl_minutes),
        purpose=LinkType.AUTHORIZATION_CODE,
        flow_type=link_type.value,
    )
    return plain


async def exchange_authorization_code(db: AsyncSession, *, code: str) -> PlatformSession:
    """Trade a one-time authorization code for a session.

    Raises:
        SessionExchangeError: Unknown, expired or already used code.
    """
    code_hash = hash_link_token(code)
    vt = await VerificationTokenRepository.get_valid(
        db, token_hash=code_hash, purpose=LinkType.AUTHORIZATION_CODE
    )
    if vt is None:
        raise SessionExchangeError()

    await VerificationTokenRepository.delete(
        db, identifier=vt.identifier, token_hash=code_hash
    )
    user = await UserRepository.get_by_email(db, vt.identifier)
    if user is None:
        raise SessionExchangeError()

    link_type = LinkType(vt.flow_type) if vt.flow_type else None
    return start_session(user, link_type)


# ===================================================================
# Other grants
# ===================================================================


async def refresh_session(db: AsyncSession, *, refresh_token: str) -> PlatformSession:
    """Issue a new pair for a valid refresh token.

    Raises:
        SessionExchangeError: Invalid or revoked refresh token.
    """
    try:
        payload = decode_refresh_token(refresh_token)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        raise SessionExchangeError() from exc

    user = await UserRepository.get_by_id(db, user_id)
    if user is None:
        raise SessionExchangeError()

    invalidated_before = user.token_invalidated_before
    if invalidated_before is not None and payload.get("iat", 0) < _as_utc(
        invalidated_before
    ).timestamp():
        raise SessionExchangeError()

    return start_session(user)


async def password_session(
    db: AsyncSession, *, email: str, password: str
) -> PlatformSession:
    """Sign in with email and password.

    Security: a bcrypt comparison runs even when the user does not exist.

    Raises:
        SessionExchangeError: Unknown email or wrong password.
    """
    user = await UserRepository.get_by_email(db, email)
    password_hash = user.password_hash if user else None
    if not check_password(password, password_hash) or user is None:
        raise SessionExchangeError("Invalid email or password")
    return start_session(user)
