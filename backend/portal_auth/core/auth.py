"""Authentication helpers for session tokens, cookies, and password handling.

Shared utilities used by the identity platform endpoints.

Pipeline:
- issue_session: access + refresh JWT pair for a user
- decode_access_token / decode_refresh_token: signature and claim checks
- set_auth_cookie / clear_auth_cookie: httpOnly cookie transport
- hash_link_token: SHA-256 storage form of single-use link tokens and codes
- validate_password_strength: Format rules (sync, no network)
- check_password_breached: HIBP k-anonymity check (async, network)
- DUMMY_HASH: Timing-safe constant for user enumeration defense
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import bcrypt
import httpx
import jwt
from fastapi import Response

from portal_auth.core.config import settings
from portal_auth.core.errors import ValidationError

logger = logging.getLogger(__name__)

# HIBP API timeout in seconds
_HIBP_TIMEOUT = 5.0

# bcrypt cost factor for password hashing
_BCRYPT_ROUNDS = 12

# How long a recovery/invite session may set a password without the old one
PASSWORD_RESET_WINDOW = timedelta(minutes=10)

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"

_REFRESH_TYPE = "refresh"


@dataclass(frozen=True)
class SessionTokens:
    """Access/refresh pair handed to the client.

    Attributes:
        access_token: Short-lived JWT used on every request.
        refresh_token: Long-lived JWT exchanged at /auth/token for a new pair.
        expires_in: Access token lifetime in seconds.
    """

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"


def create_jwt(
    *,
    user_id: str,
    secret: str,
    expires_delta: timedelta | None = None,
    extra_claims: dict | None = None,
) -> str:
    """Create a signed JWT with standard claims.

    Args:
        user_id: User UUID string for the sub claim.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to the access token TTL.
        extra_claims: Additional claims merged into the payload.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now
        + (expires_delta or timedelta(minutes=settings.access_token_ttl_minutes)),
        "iat": now,
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def issue_session(
    *,
    user_id: str,
    email: str,
    is_client: bool,
    password_reset: bool = False,
) -> SessionTokens:
    """Issue an access/refresh token pair.

    Args:
        user_id: User UUID string.
        email: User email (copied into the access token for the client).
        is_client: Whether the user belongs to the client portal population.
        password_reset: Adds a ``pwr`` (password-reset-until) claim so the
            session may set a new password without the current one. Used
            for recovery and invite links.

    Returns:
        SessionTokens for the user.
    """
    secret = settings.auth_secret.get_secret_value()
    claims: dict = {"email": email, "is_client": is_client}
    if password_reset:
        claims["pwr"] = int(
            (datetime.now(UTC) + PASSWORD_RESET_WINDOW).timestamp()
        )
    access_ttl = timedelta(minutes=settings.access_token_ttl_minutes)
    access_token = create_jwt(
        user_id=user_id,
        secret=secret,
        expires_delta=access_ttl,
        extra_claims=claims,
    )
    refresh_token = create_jwt(
        user_id=user_id,
        secret=secret,
        expires_delta=timedelta(days=settings.refresh_token_ttl_days),
        extra_claims={"typ": _REFRESH_TYPE},
    )
    return SessionTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=int(access_ttl.total_seconds()),
    )


def _decode(token: str) -> dict:
    return jwt.decode(
        token,
        settings.auth_secret.get_secret_value(),
        algorithms=["HS256"],
        audience=settings.auth_audience,
        issuer=settings.auth_issuer,
    )


def decode_access_token(token: str) -> dict:
    """Decode and verify an access token.

    Raises:
        jwt.InvalidTokenError: Bad signature, expired, wrong audience or
            issuer, or a refresh token presented as an access token.
    """
    payload = _decode(token)
    if payload.get("typ") == _REFRESH_TYPE:
        msg = "Refresh token used as access token"
        raise jwt.InvalidTokenError(msg)
    return payload


def decode_refresh_token(token: str) -> dict:
    """Decode and verify a refresh token.

    Raises:
        jwt.InvalidTokenError: Any verification failure or wrong token type.
    """
    payload = _decode(token)
    if payload.get("typ") != _REFRESH_TYPE:
        msg = "Not a refresh token"
        raise jwt.InvalidTokenError(msg)
    return payload


def set_auth_cookie(response: Response, token: str) -> None:
    """Set httpOnly JWT cookie on response.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security.

    Args:
        response: FastAPI response object.
        token: JWT token string.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=settings.access_token_ttl_minutes * 60,
        domain=settings.auth_cookie_domain or None,
    )


def clear_auth_cookie(response: Response) -> None:
    """Delete the auth cookie (attributes must match set_auth_cookie)."""
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )


def hash_link_token(plain: str) -> str:
    """SHA-256 hex digest used to store link tokens and authorization codes."""
    return hashlib.sha256(plain.encode()).hexdigest()


def hash_password(password: str) -> str:
    """bcrypt-hash a password (cost factor 12)."""
    return bcrypt.hashpw(
        password.encode(), bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)
    ).decode()


def check_password(password: str, password_hash: str | None) -> bool:
    """Compare a password against a stored hash in constant time.

    A missing hash still costs one bcrypt comparison against DUMMY_HASH.
    """
    if not password_hash:
        bcrypt.checkpw(password.encode(), DUMMY_HASH)
        return False
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def validate_password_strength(password: str) -> None:
    """Validate password meets strength requirements.

    8-128 chars, letter + number + special character.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    if len(password) > 128:
        raise ValidationError("Password must be at most 128 characters")
    if not re.search(r"[a-zA-Z]", password):
        raise ValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one number")
    if not re.search(r"[^a-zA-Z\d]", password):
        raise ValidationError("Password must contain at least one special character")


async def _fetch_hibp_range(prefix: str) -> str | None:
    """Fetch HIBP range response for a SHA-1 prefix.

    Uses k-anonymity: only the first 5 chars of the SHA-1 hash are sent.

    Args:
        prefix: First 5 chars of SHA-1 hex digest (uppercase).

    Returns:
        Response text or None on error.
    """
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"https://api.pwnedpasswords.com/range/{prefix}",
                headers={"Add-Padding": "true"},
                timeout=_HIBP_TIMEOUT,
            )
            response.raise_for_status()
            return response.text
    except httpx.HTTPError:
        logger.warning("HIBP API request failed")
        return None


async def check_password_breached(password: str) -> bool:
    """Check if password appears in HIBP breach database.

    Fails open: if HIBP is unavailable, allows the password.

    Args:
        password: Plain-text password to check.

    Returns:
        True if password found in breach database, False otherwise.
    """
    sha1 = hashlib.sha1(password.encode()).hexdigest().upper()  # nosec B324
    prefix = sha1[:5]
    suffix = sha1[5:]

    text = await _fetch_hibp_range(prefix)
    if text is None:
        return False

    for line in text.splitlines():
        parts = line.split(":")
        if len(parts) == 2 and parts[0] == suffix:
            return True

    return False
