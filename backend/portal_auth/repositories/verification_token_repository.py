"""Repository for VerificationToken CRUD operations.

Single-use platform tokens (sign-in, recovery and invite links, and
authorization codes) stored as hashed values with composite key
(identifier, token) and time-limited expiry.
"""

from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.models.verification_token import LinkType, VerificationToken


class VerificationTokenRepository:
    """Stateless repository for VerificationToken table operations.

    All methods are static - no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        identifier: str,
        token_hash: str,
        expires: datetime,
        purpose: LinkType | str,
        flow_type: str | None = None,
    ) -> VerificationToken:
        """Store a new verification token.

        Args:
            db: Async database session.
            identifier: Email address.
            token_hash: SHA-256 hash of the plain token.
            expires: Token expiry timestamp.
            purpose: LinkType the token was minted for.
            flow_type: Originating link type, for authorization codes.

        Returns:
            Created VerificationToken.
        """
        vt = VerificationToken(
            identifier=identifier,
            token=token_hash,
            expires=expires,
            purpose=LinkType(purpose).value,
            flow_type=flow_type,
        )
        db.add(vt)
        await db.flush()
        # No server-generated fields to refresh (no UUID, no timestamps)
        return vt

    @staticmethod
    async def get_valid(
        db: AsyncSession,
        *,
        token_hash: str,
        purpose: LinkType | str,
        identifier: str | None = None,
        now: datetime | None = None,
    ) -> VerificationToken | None:
        """Look up an unexpired token of the given purpose.

        Expiry is compared in SQL so stored and bound timestamps go through
        the same column type.

        Args:
            db: Async database session.
            token_hash: SHA-256 hash of the plain token.
            purpose: Required LinkType. A token minted for another purpose
                never matches.
            identifier: Email address, when the caller knows it.
            now: Evaluation time. Defaults to the current UTC time.

        Returns:
            VerificationToken if found and still valid, None otherwise.
        """
        stmt = select(VerificationToken).where(
            VerificationToken.token == token_hash,
            VerificationToken.purpose == LinkType(purpose).value,
            VerificationToken.expires > (now or datetime.now(UTC)),
        )
        if identifier is not None:
            stmt = stmt.where(VerificationToken.identifier == identifier)
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def delete(
        db: AsyncSession,
        *,
        identifier: str,
        token_hash: str,
    ) -> None:
        """Delete a token (single-use cleanup).

        Args:
            db: Async database session.
            identifier: Email address.
            token_hash: SHA-256 hash of the plain token.
        """
        stmt = delete(VerificationToken).where(
            VerificationToken.identifier == identifier,
            VerificationToken.token == token_hash,
        )
        await db.execute(stmt)

    @staticmethod
    async def delete_all_for_identifier(
        db: AsyncSession,
        *,
        identifier: str,
        purposes: tuple[LinkType, ...] | None = None,
    ) -> None:
        """Delete tokens for an identifier (cleanup on successful verify).

        Args:
            db: Async database session.
            identifier: Email address.
            purposes: Restrict the cleanup to these link types.
        """
        stmt = delete(VerificationToken).where(
            VerificationToken.identifier == identifier,
        )
        if purposes:
            stmt = stmt.where(
                VerificationToken.purpose.in_([p.value for p in purposes])
            )
        await db.execute(stmt)

    @staticmethod
    async def delete_expired(db: AsyncSession, now: datetime | None = None) -> int:
        """Delete all expired tokens (periodic cleanup).

        Args:
            db: Async database session.
            now: Cutoff time. Defaults to the current UTC time.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(VerificationToken).where(
            VerificationToken.expires < (now or datetime.now(UTC)),
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
