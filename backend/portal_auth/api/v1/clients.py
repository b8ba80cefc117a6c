"""Client identity endpoints.

Endpoints:
- POST /clients/lookup - resolve one identifier to a client (public)
- POST /clients/{client_id}/account - create a portal account and invite (admin)
- POST /clients/{client_id}/resend-credentials - resend invite or recovery link (admin)
"""

import logging
import uuid
from fastapi import APIRouter, BackgroundTasks, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.api.deps import AdminUser, DbSession
from portal_auth.core.email import send_auth_link_email
from portal_auth.core.errors import ConflictError, NotFoundError
from portal_auth.core.rate_limiting import limiter
from portal_auth.core.responses import DataResponse
from portal_auth.models.client import Client
from portal_auth.models.verification_token import LinkType
from portal_auth.repositories.client_repository import ClientRepository
from portal_auth.repositories.user_repository import UserRepository
from portal_auth.services import identity_resolver, sign_in_links

logger = logging.getLogger(__name__)

router = APIRouter()


# ===================================================================
# Request / response models
# ===================================================================


class LookupRequest(BaseModel):
    """Request body for POST /clients/lookup.

    Exactly one field must be set; anything else is a caller defect and
    surfaces as a generic 500.
    """

    model_config = ConfigDict(extra="forbid")

    code: str | None = Field(None, max_length=20)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=40)


class ClientLookupResponse(BaseModel):
    """Public fields of a resolved client.

    The full email is needed by the client SDK to request and validate a
    code; the SDK only shows the masked forms until the code is verified.
    """

    code: str
    name: str
    email: str
    masked_email: str
    masked_phone: str | None = None


class AccountCreatedResponse(BaseModel):
    """Result of an invitation or credential resend."""

    user_id: str
    email: str
    link_type: str


# ===================================================================
# POST /clients/lookup
# ===================================================================


@router.post("/lookup")
@limiter.limit("20/minute")
async def lookup_client(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LookupRequest,
    db: DbSession,
) -> DataResponse[ClientLookupResponse | None]:
    """Resolve a client by code, email or phone.

    No match is a normal outcome: ``{"data": null}``.

    Rate limit: 20 per minute per IP.
    """
    client = await identity_resolver.resolve(
        db, client_code=body.code, email=body.email, phone=body.phone
    )
    if client is None:
        return DataResponse(data=None)

    return DataResponse(
        data=ClientLookupResponse(
            code=client.client_code,
            name=client.name,
            email=client.email.lower(),
            masked_email=identity_resolver.mask_email(client.email.lower()),
            masked_phone=identity_resolver.mask_phone(client.phone),
        )
    )


# ===================================================================
# Admin: invitations
# ===================================================================


async def _get_client(db: AsyncSession, client_id: uuid.UUID) -> Client:
    client = await ClientRepository.get_by_id(db, client_id)
    if client is None:
        raise NotFoundError("Client", str(client_id))
    return client


async def _invite(
    db: AsyncSession,
    background_tasks: BackgroundTasks,
    client: Client,
) -> AccountCreatedResponse:
    email = client.email.strip().lower()
    try:
        user = await UserRepository.create(
            db, email=email, name=client.name, is_client=True
        )
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(
            code="ACCOUNT_EXISTS",
            message="An account with this email already exists",
        ) from exc

    await ClientRepository.link_user(db, client, user.id)
    link = await sign_in_links.generate_link(
        db, email=email, link_type=LinkType.INVITE
    )
    await db.commit()

    background_tasks.add_task(
        send_auth_link_email,
        to_email=email,
        link=link,
        purpose=LinkType.INVITE.value,
        name=client.name,
    )
    logger.info("Invited client %s", client.client_code)
    return AccountCreatedResponse(
        user_id=str(user.id), email=email, link_type=LinkType.INVITE.value
    )


@router.post("/{client_id}/account", status_code=201)
async def create_client_account(
    client_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    _admin: AdminUser,
    db: DbSession,
) -> DataResponse[AccountCreatedResponse]:
    """Create a portal account for a client and email an invitation.

    Raises:
        NotFoundError: Unknown client.
        ConflictError: The client already has an account.
    """
    client = await _get_client(db, client_id)
    if client.user_id is not None:
        raise ConflictError(
            code="ACCOUNT_EXISTS",
            message="Client already has a portal account",
        )
    return DataResponse(data=await _invite(db, background_tasks, client))


@router.post("/{client_id}/resend-credentials")
async def resend_credentials(
    client_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    _admin: AdminUser,
    db: DbSession,
) -> DataResponse[AccountCreatedResponse]:
    """Resend access: an invitation if no account exists, else a recovery link."""
    client = await _get_client(db, client_id)
    user = (
        await UserRepository.get_by_id(db, client.user_id)
        if client.user_id is not None
        else None
    )
    if user is None:
        return DataResponse(data=await _invite(db, background_tasks, client))

    link = await sign_in_links.generate_link(
        db, email=user.email, link_type=LinkType.RECOVERY
    )
    await db.commit()

    background_tasks.add_task(
        send_auth_link_email,
        to_email=user.email,
        link=link,
        purpose=LinkType.RECOVERY.value,
        name=user.name,
    )
    logger.info("Resent recovery link for client %s", client.client_code)
    return DataResponse(
        data=AccountCreatedResponse(
            user_id=str(user.id), email=user.email, link_type=LinkType.RECOVERY.value
        )
    )
