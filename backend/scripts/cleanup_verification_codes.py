"""Sweep expired verification codes and platform tokens.

Standalone script, meant for a periodic job (cron, scheduler).

Usage:
    cd backend && python -m scripts.cleanup_verification_codes

Consumed codes are kept until they expire like any other row; only the
expiry time decides what is removed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.repositories.verification_code_repository import (
    VerificationCodeRepository,
)
from portal_auth.repositories.verification_token_repository import (
    VerificationTokenRepository,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupStats:
    """Rows removed by one sweep."""

    codes_deleted: int
    tokens_deleted: int


async def run_cleanup(
    session: AsyncSession, now: datetime | None = None
) -> CleanupStats:
    """Delete expired codes and tokens. The caller commits.

    Args:
        session: Active async database session.
        now: Cutoff time. Defaults to the current UTC time.

    Returns:
        CleanupStats with per-table counts.
    """
    codes = await VerificationCodeRepository.delete_expired(session, now=now)
    tokens = await VerificationTokenRepository.delete_expired(session, now=now)
    logger.info("Cleanup: %d expired codes, %d expired tokens", codes, tokens)
    return CleanupStats(codes_deleted=codes, tokens_deleted=tokens)


async def main() -> None:
    """CLI entry point: run the sweep against the configured database."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from portal_auth.core.config import settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        result = await run_cleanup(session)
        await session.commit()

    await engine.dispose()

    logger.info("Final stats: %s", result)


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
