"""SQLAlchemy ORM models for Portal Auth.

All models are exported from this module for convenient imports:
    from portal_auth.models import User, Client, VerificationCode, ...

Models are organized by domain:
- user.py: User (identity platform account)
- client.py: Client (customer directory, resolved by identifier)
- verification_code.py: VerificationCode, CodePurpose (one-time codes)
- verification_token.py: VerificationToken, LinkType (single-use links/codes)
"""

from portal_auth.models.base import Base, TimestampMixin
from portal_auth.models.client import Client
from portal_auth.models.user import User
from portal_auth.models.verification_code import CodePurpose, VerificationCode
from portal_auth.models.verification_token import LinkType, VerificationToken

__all__ = [
    "Base",
    "TimestampMixin",
    "Client",
    "CodePurpose",
    "LinkType",
    "User",
    "VerificationCode",
    "VerificationToken",
]
