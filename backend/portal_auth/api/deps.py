"""Shared dependencies for API endpoints.

Authentication dependencies for the identity platform endpoints. Session
JWTs are accepted from the httpOnly cookie or an ``Authorization: Bearer``
header (the client SDK uses the header).
"""

import uuid
from datetime import UTC, datetime
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.core.auth import decode_access_token
from portal_auth.core.config import settings
from portal_auth.core.database import get_db
from portal_auth.core.errors import AdminRequiredError
from portal_auth.models import User

# Generic 401 detail - intentionally vague to prevent information leakage.
# Security: Never include specifics about WHY auth failed (expired, bad sig, etc.).
_UNAUTHORIZED_DETAIL = {
    "code": "UNAUTHORIZED",
    "message": "Authentication required",
}


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=_UNAUTHORIZED_DETAIL,
    )


def get_session_token(request: Request) -> str | None:
    """Read the session JWT from the bearer header or the auth cookie."""
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get(settings.auth_cookie_name)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


async def get_current_user_id(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> uuid.UUID:
    """Get current user ID from the session JWT.

    Validation steps:
    1. Read JWT from bearer header or cookie
    2. Decode + verify signature (HS256)
    3. Verify exp, aud, iss claims; reject refresh tokens
    4. Extract sub as UUID
    5. Check token_invalidated_before (revocation)

    Args:
        request: HTTP request (injected by FastAPI).
        db: Database session for revocation check (injected).

    Returns:
        UUID of the current authenticated user.

    Raises:
        HTTPException: 401 for any auth failure.
    """
    token = get_session_token(request)
    if not token:
        raise _unauthorized()

    try:
        payload = decode_access_token(token)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        raise _unauthorized() from exc

    # Security: iat is required for revocation check. A JWT without iat
    # would bypass token_invalidated_before entirely.
    iat = payload.get("iat")
    if iat is None:
        raise _unauthorized()

    # Revocation check: reject JWTs issued before token_invalidated_before
    result = await db.execute(
        select(User.token_invalidated_before).where(User.id == user_id)
    )
    invalidated_before = result.scalar_one_or_none()
    if invalidated_before is not None and iat < _as_utc(invalidated_before).timestamp():
        raise _unauthorized()

    return user_id


async def get_current_user(
    user_id: Annotated[uuid.UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get full User object for current user.

    Raises:
        HTTPException: 401 if user not found (deleted account, invalid ID).
    """
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise _unauthorized()

    return user


def get_password_reset_eligible(request: Request) -> bool:
    """Check if the current JWT has a valid password-reset claim.

    Returns True when the JWT contains a ``pwr`` (password-reset-until)
    timestamp that is still in the future. Recovery and invite sessions
    carry it, letting PUT /auth/password skip the current password.
    """
    token = get_session_token(request)
    if not token:
        return False

    try:
        payload = decode_access_token(token)
    except jwt.InvalidTokenError:
        return False

    pwr = payload.get("pwr")
    if pwr is None:
        return False

    return bool(datetime.now(UTC).timestamp() < pwr)


async def require_admin(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Gate admin-only endpoints.

    Raises:
        AdminRequiredError: Authenticated user lacks the admin flag.
    """
    if not user.is_admin:
        raise AdminRequiredError()
    return user


# Reusable type aliases for dependency injection
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
CurrentUser = Annotated[User, Depends(get_current_user)]
PasswordResetEligible = Annotated[bool, Depends(get_password_reset_eligible)]
AdminUser = Annotated[User, Depends(require_admin)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
