"""
Async Postgres pool management.

The Supabase project's Postgres database is reached directly through asyncpg
so that quota counters can be updated with single atomic statements.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import asyncpg

from voicematrix.config import DatabaseSettings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    # jsonb columns round-trip as Python dicts
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


async def get_pool(settings: DatabaseSettings) -> Optional[asyncpg.Pool]:
    """Create the shared pool on first use. Returns None when unconfigured."""
    global _pool
    if _pool is not None:
        return _pool

    if not settings.database_url:
        return None

    # PgBouncer (Supabase pooler) breaks prepared statements, so the
    # statement cache stays off.
    _pool = await asyncpg.create_pool(
        dsn=settings.database_url.get_secret_value(),
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        statement_cache_size=0,
        init=_init_connection,
    )

    logger.info(
        "Postgres pool initialized (min=%s max=%s)",
        settings.db_pool_min_size,
        settings.db_pool_max_size,
    )
    return _pool


async def close_pool() -> None:
    """Close the shared pool (used during graceful shutdown)."""
    global _pool
    if _pool is None:
        return
    try:
        await _pool.close()
    finally:
        _pool = None
