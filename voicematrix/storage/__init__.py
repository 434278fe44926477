"""Storage backends and the factory that picks one from settings."""

import logging

from voicematrix.config import Settings
from voicematrix.storage.base import Storage
from voicematrix.storage.memory import InMemoryStorage

logger = logging.getLogger(__name__)

__all__ = ["Storage", "InMemoryStorage", "build_storage"]


async def build_storage(settings: Settings) -> Storage:
    """
    Return the Postgres storage when DATABASE_URL is set, otherwise the
    in-memory implementation (dev mode only; startup validation refuses it
    in other environments).
    """
    if settings.is_postgres_configured:
        from voicematrix.db import get_pool
        from voicematrix.storage.postgres import PostgresStorage

        pool = await get_pool(settings.database)
        logger.info("Using Postgres storage")
        return PostgresStorage(pool)

    logger.warning("DATABASE_URL not set, using in-memory storage")
    return InMemoryStorage()
