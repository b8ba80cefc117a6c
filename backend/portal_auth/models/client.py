"""Client model - the business's customer directory.

Only the identifying fields used by the passwordless flows are modelled
here; the identity resolver reads them and the invitation flow links a
portal User.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal_auth.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from portal_auth.models.user import User


class Client(Base, TimestampMixin):
    """Client identity record.

    Attributes:
        id: UUID primary key.
        client_code: Public short code (e.g. ``CLI00001``).
        name: Display name.
        email: Canonical contact email (lower-case).
        phone: Optional phone number as entered.
        is_active: Inactive clients never resolve.
        user_id: Portal account, once the client has been invited.
    """

    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    client_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("true"),
        default=True,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    user: Mapped["User | None"] = relationship("User", back_populates="client")
