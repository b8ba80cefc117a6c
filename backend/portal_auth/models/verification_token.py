"""Verification token model - single-use platform link tokens.

Stores hashed tokens behind magic links, password recovery links, account
invitations, and one-time authorization codes. Single-use, time-limited.
No id column - looked up by (identifier, token) composite key.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from portal_auth.models.base import Base


class LinkType(str, Enum):
    """Token intent, bound at creation time.

    Values:
        MAGICLINK: Password-less sign-in.
        RECOVERY: Sign-in that must continue to "set a new password".
        INVITE: First sign-in of an invited client; also sets a password.
        AUTHORIZATION_CODE: One-time code traded at /auth/token for a session.
    """

    MAGICLINK = "magiclink"
    RECOVERY = "recovery"
    INVITE = "invite"
    AUTHORIZATION_CODE = "authorization_code"


class VerificationToken(Base):
    """Single-use platform token.

    Entries are single-use and time-limited. Looked up by composite key
    (identifier, token) and deleted after use.

    Attributes:
        identifier: Email address.
        token: Hashed token value.
        expires: Token expiry timestamp.
        purpose: LinkType value.
        flow_type: For authorization codes, the link type that produced
            them (``recovery``/``invite`` sessions get the password-reset claim).
    """

    __tablename__ = "verification_tokens"
    __table_args__ = (
        UniqueConstraint(
            "identifier", "token", name="uq_verification_tokens_identifier_token"
        ),
    )

    # Use identifier + token as the composite primary key for ORM mapping
    identifier: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        primary_key=True,
    )
    token: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        primary_key=True,
    )
    expires: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    purpose: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default="magiclink",
    )
    flow_type: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
