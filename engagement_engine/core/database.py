"""
Async PostgreSQL connection pool for the Engagement Engine backend.

Only used when DATABASE_URL is set; without it the service runs on the
InMemoryStore and nothing here is touched.

Key Components:
- init_db() / close_db(): pool lifecycle, driven by the app lifespan
- get_db_pool(): the shared pool, created lazily for jobs run outside the app
- execute_query() / execute_query_one() / execute_command(): one statement on
  one pooled connection, used by PostgresStore for all single-row work
- create_schema(): applies sql/schema.py DDL at startup

Connection Pool Configuration:
- min_size: 2
- max_size: 10
- command_timeout: 60 seconds

Usage:
    await init_db()

    pool = await get_db_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            await conn.execute(...)

    await close_db()
"""

import logging
from typing import Any, List, Optional

import asyncpg
from asyncpg import Pool

from engagement_engine.core.config import get_settings
from engagement_engine.sql.schema import get_schema_ddl


logger = logging.getLogger(__name__)

_pool: Optional[Pool] = None


async def init_db() -> Pool:
    """
    Initialize the database connection pool.

    Idempotent: returns the existing pool when already initialized.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        RuntimeError: If DATABASE_URL is not configured.
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is not configured")

        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=2,
            max_size=10,
            command_timeout=60,
        )
        logger.info("PostgreSQL connection pool created")

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing it lazily if needed.

    Returns:
        Pool: The asyncpg connection pool instance.
    """
    global _pool

    if _pool is None:
        await init_db()

    assert _pool is not None, "Pool should be initialized after init_db()"
    return _pool


async def close_db() -> None:
    """Close the pool if one was created."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None


async def execute_query(query: str, *args: Any) -> List[asyncpg.Record]:
    """
    Execute a single query and return all rows.

    Args:
        query: SQL with $1, $2, ... placeholders.
        *args: Positional query parameters.

    Returns:
        List[asyncpg.Record]: Rows returned by the query.
    """
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        return await conn.fetch(query, *args)


async def execute_query_one(query: str, *args: Any) -> Optional[asyncpg.Record]:
    """
    Execute a query and return a single row or None.
    """
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        return await conn.fetchrow(query, *args)


async def execute_command(query: str, *args: Any) -> str:
    """
    Execute a command (INSERT/UPDATE/DELETE) and return the status string,
    e.g. 'DELETE 1'.
    """
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        return await conn.execute(query, *args)


async def create_schema() -> None:
    """
    Create every table the PostgreSQL store needs.

    All statements use IF NOT EXISTS, so this is safe on every startup.
    """
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        await conn.execute(get_schema_ddl())
    logger.info("Database schema ensured")
