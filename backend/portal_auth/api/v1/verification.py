"""Verification code endpoints.

Endpoints:
- POST /verification/codes - issue a code and email it
- POST /verification/codes/verify - validate a code

Issuing never reveals whether an address belongs to anyone. Every
validation failure (wrong, used, expired, never issued) shares one
message.
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from portal_auth.api.deps import DbSession
from portal_auth.core.rate_limiting import limiter
from portal_auth.core.responses import DataResponse
from portal_auth.models.verification_code import CodePurpose
from portal_auth.services.verification_service import VerificationService

router = APIRouter()


# ===================================================================
# Request / response models
# ===================================================================


class IssueCodeRequest(BaseModel):
    """Request body for POST /verification/codes."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    purpose: CodePurpose
    display_name: str | None = Field(None, max_length=255)


class VerifyCodeRequest(BaseModel):
    """Request body for POST /verification/codes/verify."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    code: str = Field(min_length=1, max_length=12)
    purpose: CodePurpose


class VerificationResultResponse(BaseModel):
    """Validation outcome.

    ``session_artifact`` is only present for login codes: a single-use
    sign-in link the client redeems for a session.
    """

    verified: bool
    session_artifact: str | None = None


# ===================================================================
# POST /verification/codes
# ===================================================================


@router.post("/codes")
@limiter.limit("5/15minute")
async def issue_code(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: IssueCodeRequest,
    db: DbSession,
) -> DataResponse[dict]:
    """Issue a verification code.

    Responds with success unless the email is malformed (400) or the
    email provider fails (502).

    Rate limit: 5 per 15 minutes per IP.
    """
    await VerificationService(db).issue_code(
        email=body.email,
        purpose=body.purpose,
        display_name=body.display_name,
    )
    return DataResponse(data={"message": "Verification code sent"})


# ===================================================================
# POST /verification/codes/verify
# ===================================================================


@router.post("/codes/verify")
@limiter.limit("10/minute")
async def verify_code(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifyCodeRequest,
    db: DbSession,
) -> DataResponse[VerificationResultResponse]:
    """Validate a verification code.

    Rate limit: 10 per minute per IP.
    """
    result = await VerificationService(db).validate_code(
        email=body.email,
        code=body.code,
        purpose=body.purpose,
    )
    return DataResponse(
        data=VerificationResultResponse(
            verified=result.verified,
            session_artifact=result.session_artifact,
        )
    )
