"""Purge idle sessions and expired one-time tokens.

Standalone script, meant for a daily cron job or scheduled container.

Usage:
    cd backend && python -m scripts.purge_expired
"""

import logging

from gatekeeper.services.retention_cleanup import run_all_cleanups

logger = logging.getLogger(__name__)


async def main() -> None:
    """CLI entry point: run cleanup against the configured database."""
    from sqlalchemy.ext.asyncio import (
        AsyncSession,
        async_sessionmaker,
        create_async_engine,
    )

    from gatekeeper.core.config import get_settings

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        result = await run_all_cleanups(session, settings)
        await session.commit()

    await engine.dispose()

    logger.info("Final stats: %s", result)


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
