"""Verification service - issue and validate one-time codes.

Issue: code store issue, commit, then deliver the code by email. The
response never depends on whether the address belongs to anyone.

Validate: code store consume, committed before anything else happens.
For login codes the identity platform is then asked for a single-use
sign-in link. If that fails the code stays spent and the visitor must
request a new one.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.core.config import settings
from portal_auth.core.email import send_verification_code_email
from portal_auth.core.errors import InvalidCodeError
from portal_auth.models.verification_code import CodePurpose
from portal_auth.models.verification_token import LinkType
from portal_auth.repositories.verification_code_repository import (
    VerificationCodeRepository,
)
from portal_auth.services import sign_in_links
from portal_auth.services.identity_resolver import mask_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a successful code validation.

    Attributes:
        verified: Always True; failures raise InvalidCodeError.
        session_artifact: For login codes, the single-use sign-in link.
    """

    verified: bool
    session_artifact: str | None = None


class VerificationService:
    """Issues and validates verification codes.

    Args:
        db: Async database session. The service commits.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def issue_code(
        self,
        *,
        email: str,
        purpose: CodePurpose,
        display_name: str | None = None,
    ) -> None:
        """Issue a code and email it.

        Raises:
            EmailDeliveryError: The notification provider failed. The new
                code is already stored and simply expires unused.
        """
        email = email.strip().lower()
        row = await VerificationCodeRepository.issue(
            self._db, email=email, purpose=purpose
        )
        await self._db.commit()

        await send_verification_code_email(
            to_email=email, code=row.code, display_name=display_name
        )
        logger.info(
            "Issued %s verification code to %s", purpose.value, mask_email(email)
        )

    async def validate_code(
        self,
        *,
        email: str,
        code: str,
        purpose: CodePurpose,
    ) -> VerificationResult:
        """Consume a code and, for login, fetch a sign-in link.

        Raises:
            InvalidCodeError: Wrong, used, expired or never-issued code.
            SessionExchangeError: Login code was valid but the platform
                would not issue a link (no portal account).
        """
        email = email.strip().lower()
        consumed = await VerificationCodeRepository.consume(
            self._db, email=email, code=code, purpose=purpose
        )
        if not consumed:
            raise InvalidCodeError()
        # Durable before any downstream request
        await self._db.commit()

        if purpose != CodePurpose.LOGIN:
            return VerificationResult(verified=True)

        link = await sign_in_links.generate_link(
            self._db,
            email=email,
            link_type=LinkType.MAGICLINK,
            redirect_to=settings.portal_url,
        )
        await self._db.commit()
        logger.info("Login code accepted for %s", mask_email(email))
        return VerificationResult(verified=True, session_artifact=link)
