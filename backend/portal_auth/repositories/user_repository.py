"""Repository for portal accounts.

Lookups for the identity platform, creation of invited client accounts,
and the three writes the auth flows make: marking an address verified,
setting a password, and revoking outstanding sessions. The caller commits.
"""

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.models.user import User


class UserRepository:
    """Stateless repository for the users table."""

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch an account by address; stored addresses are lower-case."""
        stmt = select(User).where(User.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        name: str | None = None,
        is_client: bool = False,
    ) -> User:
        """Create an account without a password.

        Invited clients choose their password through the invite link.

        Raises:
            sqlalchemy.exc.IntegrityError: The address already has an account.
        """
        user = User(email=email.strip().lower(), name=name, is_client=is_client)
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def mark_email_verified(db: AsyncSession, user: User, at: datetime) -> None:
        """Record the first proof of mailbox ownership. Later calls keep it."""
        if user.email_verified is None:
            user.email_verified = at
            await db.flush()

    @staticmethod
    async def set_password(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        password_hash: str,
        sessions_valid_from: datetime,
    ) -> User | None:
        """Store a new password hash and revoke sessions issued before it.

        Returns:
            The updated User, or None if the account no longer exists.
        """
        user = await db.get(User, user_id)
        if user is None:
            return None
        user.password_hash = password_hash
        user.token_invalidated_before = sessions_valid_from
        await db.flush()
        return user

    @staticmethod
    async def revoke_sessions(
        db: AsyncSession, user_id: uuid.UUID, *, before: datetime
    ) -> bool:
        """Reject every token issued before ``before``.

        Returns:
            True if the account exists.
        """
        result = await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(token_invalidated_before=before)
        )
        return result.rowcount > 0
