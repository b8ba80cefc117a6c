"""User model - identity platform accounts.

Portal clients and staff sign in as Users. ``is_client`` marks the client
portal population; sessions for other users are rejected by the portal.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal_auth.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from portal_auth.models.client import Client


class User(Base, TimestampMixin):
    """User account for authentication.

    Attributes:
        id: UUID primary key.
        email: Unique email address (lower-case).
        name: Display name.
        email_verified: Timestamp when email was verified. NULL = unverified.
        password_hash: bcrypt hash. NULL until an invite is accepted.
        is_client: Belongs to the client portal population.
        is_admin: Whether the user has admin privileges. Defaults to False.
        token_invalidated_before: JWTs issued before this are rejected.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    email_verified: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    is_client: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    is_admin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    token_invalidated_before: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    client: Mapped["Client | None"] = relationship(
        "Client",
        back_populates="user",
        uselist=False,
    )
