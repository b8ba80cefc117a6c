"""Identity resolver - maps one public identifier to one client.

A lookup names exactly one of client code, email or phone. The query
narrows on that one field only; the three are never combined. Resolution
is not authentication: every hit must be followed by a possession proof
(a verification code) before the caller is treated as that client.

Masking helpers produce the forms shown to a visitor before the code is
validated.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.core.errors import IdentityResolutionDefect
from portal_auth.models.client import Client

logger = logging.getLogger(__name__)

# Characters people type into phone numbers that carry no digits
_PHONE_SEPARATORS = (" ", "-", ".", "(", ")")

_PHONE_VISIBLE_DIGITS = 3


# ===================================================================
# Normalization
# ===================================================================


def normalize_client_code(value: str) -> str:
    return value.strip().upper()


def normalize_email(value: str) -> str:
    return value.strip().lower()


def normalize_phone(value: str) -> str:
    """Strip whitespace and common separators, keeping a leading ``+``."""
    for sep in _PHONE_SEPARATORS:
        value = value.replace(sep, "")
    return value.strip()


def _normalized_phone_column():  # noqa: ANN202
    expr = Client.phone
    for sep in _PHONE_SEPARATORS:
        expr = func.replace(expr, sep, "")
    return expr


# ===================================================================
# Resolution
# ===================================================================


async def resolve(
    db: AsyncSession,
    *,
    client_code: str | None = None,
    email: str | None = None,
    phone: str | None = None,
) -> Client | None:
    """Resolve a single identifier to at most one active client.

    Args:
        db: Async database session.
        client_code: Public client code (case-insensitive).
        email: Contact email (case-insensitive).
        phone: Phone number in any common formatting.

    Returns:
        The matching Client, or None if nothing matches.

    Raises:
        IdentityResolutionDefect: Zero or several identifiers were
            supplied, or the identifier matched more than one client.
    """
    supplied = {
        name: value
        for name, value in (
            ("code", client_code),
            ("email", email),
            ("phone", phone),
        )
        if value is not None and value.strip()
    }
    if len(supplied) != 1:
        reason = f"expected exactly one identifier, got {sorted(supplied) or 'none'}"
        logger.error("Identity lookup contract violation: %s", reason)
        raise IdentityResolutionDefect(reason)

    field, raw = next(iter(supplied.items()))
    stmt = select(Client).where(Client.is_active.is_(True))
    if field == "code":
        stmt = stmt.where(Client.client_code == normalize_client_code(raw))
    elif field == "email":
        stmt = stmt.where(func.lower(Client.email) == normalize_email(raw))
    else:
        normalized = normalize_phone(raw)
        if not normalized:
            return None
        stmt = stmt.where(_normalized_phone_column() == normalized)

    # Two rows are enough to detect ambiguity
    result = await db.execute(stmt.limit(2))
    matches = result.scalars().all()
    if len(matches) > 1:
        reason = f"identifier '{field}' matched more than one client"
        logger.error("Identity lookup data violation: %s", reason)
        raise IdentityResolutionDefect(reason)

    return matches[0] if matches else None


# ===================================================================
# Masking
# ===================================================================


def mask_email(email: str) -> str:
    """Mask an email as first letter + ``***`` for local part and domain.

    ``maria@gmail.com`` becomes ``m***@g***.com``. Values without ``@``
    are returned unchanged.
    """
    if not email or "@" not in email:
        return email
    local, domain = email.split("@", 1)
    domain_name, _, tld = domain.partition(".")
    masked_local = f"{local[0]}***" if local else "***"
    masked_domain = f"{domain_name[0]}***" if domain_name else "***"
    if not tld:
        return f"{masked_local}@{masked_domain}"
    return f"{masked_local}@{masked_domain}.{tld}"


def mask_phone(phone: str | None) -> str | None:
    """Mask a phone number, leaving only the last three digits visible."""
    if not phone:
        return None
    digits = normalize_phone(phone).lstrip("+")
    if len(digits) <= _PHONE_VISIBLE_DIGITS:
        return "*" * len(digits)
    hidden = len(digits) - _PHONE_VISIBLE_DIGITS
    return "*" * hidden + digits[-_PHONE_VISIBLE_DIGITS:]
