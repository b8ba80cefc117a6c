"""Identity platform session endpoints.

Sign-in links (magic link, recovery, invite) are redeemed here and turned
into sessions; sessions are refreshed, inspected, and ended here.

Endpoints:
- GET /auth/verify - redeem a link, redirect to the frontend with the session
- POST /auth/verify - redeem a link, return the session as JSON
- POST /auth/token - authorization_code | refresh_token | password grants
- GET /auth/me - current user
- POST /auth/logout - revoke sessions and clear the cookie
- PUT /auth/password - set a new password
- POST /auth/recover - email a recovery link (always succeeds)
"""

import logging
import uuid
from datetime import UTC, datetime
from typing import Annotated, Literal

import jwt
from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from starlette.responses import Response

from portal_auth.api.deps import (
    CurrentUser,
    DbSession,
    PasswordResetEligible,
    get_session_token,
)
from portal_auth.core.auth import (
    check_password,
    check_password_breached,
    clear_auth_cookie,
    decode_access_token,
    hash_password,
    set_auth_cookie,
    validate_password_strength,
)
from portal_auth.core.config import settings
from portal_auth.core.email import send_auth_link_email
from portal_auth.core.errors import (
    APIError,
    SessionExchangeError,
    UnauthorizedError,
    ValidationError,
)
from portal_auth.core.rate_limiting import limiter
from portal_auth.core.responses import DataResponse
from portal_auth.models.verification_token import LinkType
from portal_auth.repositories.user_repository import UserRepository
from portal_auth.repositories.verification_token_repository import (
    VerificationTokenRepository,
)
from portal_auth.services import sign_in_links
from portal_auth.services.identity_resolver import mask_email

logger = logging.getLogger(__name__)

router = APIRouter()

_PASSWORD_BREACHED_MSG = (  # nosec B105
    "This password has appeared in a data breach. Please choose a different one."
)

_LinkTypeParam = Literal["magiclink", "recovery", "invite"]


# ===================================================================
# Request models
# ===================================================================


class VerifyLinkRequest(BaseModel):
    """Request body for POST /auth/verify."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=256)
    type: _LinkTypeParam
    identifier: EmailStr | None = None


class TokenRequest(BaseModel):
    """Request body for POST /auth/token.

    Which fields are required depends on ``grant_type``.
    """

    model_config = ConfigDict(extra="forbid")

    grant_type: Literal["authorization_code", "refresh_token", "password"]
    code: str | None = Field(None, max_length=256)
    refresh_token: str | None = Field(None, max_length=2048)
    email: EmailStr | None = None
    password: str | None = Field(None, max_length=128)


class UpdatePasswordRequest(BaseModel):
    """Request body for PUT /auth/password."""

    model_config = ConfigDict(extra="forbid")

    current_password: str | None = Field(None, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


class RecoverRequest(BaseModel):
    """Request body for POST /auth/recover."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    redirect_to: str | None = Field(None, max_length=2048)


# ===================================================================
# GET /auth/verify
# ===================================================================


@router.get("/verify")
@limiter.limit("10/minute")
async def verify_link_redirect(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    token: Annotated[str, Query(min_length=1, max_length=256)],
    type: Annotated[_LinkTypeParam, Query()],  # noqa: A002 - wire name
    identifier: Annotated[str | None, Query(max_length=255)] = None,
    redirect_to: Annotated[str | None, Query(max_length=2048)] = None,
    *,
    db: DbSession,
) -> RedirectResponse:
    """Redeem a link and redirect to the frontend.

    Implicit flow: the session travels in the URL fragment together with
    the link type. PKCE flow: a one-time ``code`` travels in the query
    string (plus ``type`` for recovery/invite) and the client exchanges it
    at POST /auth/token.

    Rate limit: 10 per minute per IP.
    """
    link_type = LinkType(type)
    session = await sign_in_links.verify_link(
        db, token=token, link_type=link_type, identifier=identifier
    )
    target = sign_in_links.safe_redirect_target(redirect_to)

    if settings.auth_flow_type == "pkce":
        code = await sign_in_links.create_authorization_code(
            db, user=session.user, link_type=link_type
        )
        await db.commit()
        response = RedirectResponse(
            url=sign_in_links.code_redirect_url(target, code, link_type),
            status_code=307,
        )
    else:
        await db.commit()
        response = RedirectResponse(
            url=sign_in_links.implicit_redirect_url(target, session),
            status_code=307,
        )
        set_auth_cookie(response, session.tokens.access_token)

    # Prevent token leakage via Referer header
    response.headers["Referrer-Policy"] = "no-referrer"
    return response


# ===================================================================
# POST /auth/verify
# ===================================================================


@router.post("/verify")
@limiter.limit("10/minute")
async def verify_link_json(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifyLinkRequest,
    response: Response,
    db: DbSession,
) -> DataResponse[dict]:
    """Redeem a link and return the session as JSON.

    Used by the client SDK when it holds an action link (e.g. the login
    artifact returned by code verification).
    """
    session = await sign_in_links.verify_link(
        db,
        token=body.token,
        link_type=LinkType(body.type),
        identifier=body.identifier,
    )
    await db.commit()
    set_auth_cookie(response, session.tokens.access_token)
    return DataResponse(data=session.to_payload())


# ===================================================================
# POST /auth/token
# ===================================================================


@router.post("/token")
@limiter.limit("10/minute")
async def token(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: TokenRequest,
    response: Response,
    db: DbSession,
) -> DataResponse[dict]:
    """Exchange a grant for a session.

    All failures share one generic 401 so callers cannot tell an unknown
    code from an expired or used one.

    Rate limit: 10 per minute per IP.
    """
    if body.grant_type == "authorization_code":
        if not body.code:
            raise ValidationError("code is required for authorization_code")
        session = await sign_in_links.exchange_authorization_code(db, code=body.code)
    elif body.grant_type == "refresh_token":
        if not body.refresh_token:
            raise ValidationError("refresh_token is required for refresh_token")
        session = await sign_in_links.refresh_session(
            db, refresh_token=body.refresh_token
        )
    else:
        if not body.email or not body.password:
            raise ValidationError("email and password are required for password")
        session = await sign_in_links.password_session(
            db, email=body.email, password=body.password
        )

    await db.commit()
    set_auth_cookie(response, session.tokens.access_token)
    return DataResponse(data=session.to_payload())


# ===================================================================
# GET /auth/me
# ===================================================================


@router.get("/me")
async def get_me(
    user: CurrentUser,
    password_reset_eligible: PasswordResetEligible,
) -> DataResponse[dict]:
    """Return the current user.

    Returns 401 if no valid JWT.
    """
    data = sign_in_links.user_payload(user)
    if password_reset_eligible:
        data["can_reset_password"] = True
    return DataResponse(data=data)


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: DbSession,
) -> DataResponse[dict]:
    """Sign out.

    No auth required - the cookie is cleared regardless. When a valid
    session token is presented, every session of that user is revoked
    (refresh tokens included).
    """
    token_value = get_session_token(request)
    if token_value:
        try:
            payload = decode_access_token(token_value)
        except jwt.InvalidTokenError:
            payload = None
        if payload is not None:
            try:
                user_id = uuid.UUID(payload["sub"])
            except (KeyError, ValueError):
                user_id = None
            if user_id is not None:
                await UserRepository.revoke_sessions(
                    db, user_id, before=datetime.now(UTC)
                )
                await db.commit()

    clear_auth_cookie(response)
    return DataResponse(data={"message": "Signed out"})


# ===================================================================
# PUT /auth/password
# ===================================================================


@router.put("/password")
@limiter.limit("5/hour")
async def update_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: UpdatePasswordRequest,
    response: Response,
    user: CurrentUser,
    password_reset_eligible: PasswordResetEligible,
    db: DbSession,
) -> DataResponse[dict]:
    """Set a new password for the authenticated user.

    The current password is required when one is set, unless the session
    carries the password-reset claim (recovery/invite links). All prior
    sessions are invalidated and a fresh session is returned.

    Rate limit: 5 per hour per user.
    """
    if user.password_hash and not password_reset_eligible:
        if not body.current_password:
            raise ValidationError("Current password required")
        if not check_password(body.current_password, user.password_hash):
            raise UnauthorizedError("Current password incorrect")

    validate_password_strength(body.new_password)

    if await check_password_breached(body.new_password):
        raise APIError(
            code="PASSWORD_BREACHED",
            message=_PASSWORD_BREACHED_MSG,
            status_code=422,
        )

    # Truncate microseconds: PyJWT encodes iat as integer seconds,
    # so the new JWT's iat must be >= token_invalidated_before.
    invalidation_time = datetime.now(UTC).replace(microsecond=0)

    updated = await UserRepository.set_password(
        db,
        user.id,
        password_hash=hash_password(body.new_password),
        sessions_valid_from=invalidation_time,
    )
    if updated is None:
        raise UnauthorizedError()
    # Outstanding password links must not outlive the password they set
    await VerificationTokenRepository.delete_all_for_identifier(
        db,
        identifier=updated.email,
        purposes=(LinkType.RECOVERY, LinkType.INVITE),
    )
    await db.commit()

    session = sign_in_links.start_session(updated)
    set_auth_cookie(response, session.tokens.access_token)
    return DataResponse(data=session.to_payload())


# ===================================================================
# POST /auth/recover
# ===================================================================


@router.post("/recover")
@limiter.limit("5/hour")
async def recover(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RecoverRequest,
    background_tasks: BackgroundTasks,
    db: DbSession,
) -> DataResponse[dict]:
    """Email a password recovery link.

    Always returns success regardless of whether the email exists
    (prevents email enumeration). The email is sent as a background task.

    Rate limit: 5 per hour per IP.
    """
    email = body.email.strip().lower()
    try:
        link = await sign_in_links.generate_link(
            db,
            email=email,
            link_type=LinkType.RECOVERY,
            redirect_to=body.redirect_to,
        )
    except SessionExchangeError:
        link = None
    await db.commit()

    if link is not None:
        background_tasks.add_task(
            send_auth_link_email,
            to_email=email,
            link=link,
            purpose=LinkType.RECOVERY.value,
        )
    else:
        logger.info("Recovery requested for unknown email %s", mask_email(email))

    return DataResponse(
        data={"message": "If an account exists, a recovery link has been sent"}
    )
