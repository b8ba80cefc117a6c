"""Repository for VerificationCode lifecycle operations (the code store).

One-time codes are issued by delete-then-insert per (email, purpose) and
consumed by a single guarded UPDATE, so a code succeeds at most once and
only inside its validity window.
"""

import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.core.config import settings
from portal_auth.models.verification_code import CodePurpose, VerificationCode


def _generate_code() -> str:
    """Uniformly random 6-digit numeric code (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))


def _purpose_value(purpose: CodePurpose | str) -> str:
    return CodePurpose(purpose).value


class VerificationCodeRepository:
    """Stateless repository for verification_codes table operations.

    All methods are static - no instance state. The caller owns the
    transaction; nothing here commits.
    """

    @staticmethod
    async def issue(
        db: AsyncSession,
        *,
        email: str,
        purpose: CodePurpose | str,
        now: datetime | None = None,
    ) -> VerificationCode:
        """Issue a fresh code, voiding every earlier code for the pair.

        Deletes all rows for (email, purpose) and inserts a new one. There
        is no uniqueness constraint behind this; two concurrent issues may
        interleave and leave only the later insert valid.

        Args:
            db: Async database session.
            email: Recipient email (normalized to lower-case).
            purpose: CodePurpose the code is bound to.
            now: Issue time. Defaults to the current UTC time.

        Returns:
            The inserted VerificationCode (``.code`` holds the plain code).
        """
        email = email.strip().lower()
        purpose_value = _purpose_value(purpose)
        issued_at = now or datetime.now(UTC)

        await db.execute(
            delete(VerificationCode).where(
                VerificationCode.email == email,
                VerificationCode.purpose == purpose_value,
            )
        )

        row = VerificationCode(
            email=email,
            code=_generate_code(),
            purpose=purpose_value,
            created_at=issued_at,
            expires_at=issued_at
            + timedelta(minutes=settings.verification_code_ttl_minutes),
        )
        db.add(row)
        await db.flush()
        return row

    @staticmethod
    async def consume(
        db: AsyncSession,
        *,
        email: str,
        code: str,
        purpose: CodePurpose | str,
        now: datetime | None = None,
    ) -> bool:
        """Mark a code used if it is valid right now.

        The check and the write are one UPDATE statement, so two concurrent
        consumers of the same code cannot both succeed.

        Args:
            db: Async database session.
            email: Email the code was issued to.
            code: Code as typed by the user.
            purpose: CodePurpose the code must have been issued for.
            now: Evaluation time. Defaults to the current UTC time.

        Returns:
            True if exactly one unused, unexpired row matched and is now
            used. False for wrong, used, expired or never-issued codes.
        """
        consumed_at = now or datetime.now(UTC)
        stmt = (
            update(VerificationCode)
            .where(
                VerificationCode.email == email.strip().lower(),
                VerificationCode.code == code.strip(),
                VerificationCode.purpose == _purpose_value(purpose),
                VerificationCode.used_at.is_(None),
                VerificationCode.expires_at > consumed_at,
            )
            .values(used_at=consumed_at)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count == 1

    @staticmethod
    async def delete_expired(db: AsyncSession, now: datetime | None = None) -> int:
        """Delete all expired codes (periodic cleanup).

        Args:
            db: Async database session.
            now: Cutoff time. Defaults to the current UTC time.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(VerificationCode).where(
            VerificationCode.expires_at < (now or datetime.now(UTC)),
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
