"""Repository for Client identity records.

The resolver does its own narrowing query; this repository covers the
admin invitation flow (fetch by id, link a portal user).
"""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.models.client import Client


class ClientRepository:
    """Stateless repository for Client table operations."""

    @staticmethod
    async def get_by_id(db: AsyncSession, client_id: uuid.UUID) -> Client | None:
        """Fetch a client by primary key."""
        return await db.get(Client, client_id)

    @staticmethod
    async def link_user(
        db: AsyncSession, client: Client, user_id: uuid.UUID
    ) -> Client:
        """Attach a portal account to a client.

        Args:
            db: Async database session.
            client: Client row (already loaded in this session).
            user_id: UUID of the newly created portal user.

        Returns:
            The updated Client.
        """
        client.user_id = user_id
        await db.flush()
        return client
