"""Verification code model - one-time numeric codes.

Short-lived 6-digit codes proving possession of a mailbox. Codes are
partitioned by purpose so a code issued for one use can never be replayed
for another. At most one code per (email, purpose) is kept; issuing a new
one deletes the previous rows. There is deliberately no unique constraint
on the pair.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from portal_auth.models.base import Base


class CodePurpose(str, Enum):
    """What a verification code may be used for.

    Values:
        LOGIN: Passwordless portal sign-in; validation yields a sign-in link.
        CONTACT_VERIFICATION: Identity proof for contact/ticket forms; no session.
    """

    LOGIN = "login"
    CONTACT_VERIFICATION = "contact_verification"


class VerificationCode(Base):
    """One-time verification code.

    Attributes:
        id: UUID primary key.
        email: Normalized (lower-case) recipient address.
        code: 6-digit numeric string.
        purpose: CodePurpose value.
        created_at: Issue time.
        expires_at: Last instant the code is accepted (exclusive).
        used_at: When the code was consumed. NULL = unused.
    """

    __tablename__ = "verification_codes"
    __table_args__ = (
        Index("idx_verification_codes_email_purpose", "email", "purpose"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    purpose: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        # Never include the code itself
        return f"<VerificationCode {self.purpose} expires={self.expires_at}>"
