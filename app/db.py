"""Database connection management using asyncpg."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg

from app.config import get_settings

logger = logging.getLogger(__name__)

# Global connection pool
_pool: asyncpg.Pool | None = None


async def init_pool() -> asyncpg.Pool:
    """Initialize the database connection pool."""
    global _pool
    if _pool is not None:
        return _pool

    settings = get_settings()
    db_url = settings.db_connection_string

    if not db_url:
        raise ValueError(
            "Database connection string not configured. "
            "Set DATABASE_URL or SUPABASE_DB_URL environment variable."
        )

    logger.info(
        f"Initializing database connection pool "
        f"(min={settings.db_pool_min_size}, max={settings.db_pool_max_size})"
    )
    # Scoring runs hold one connection for the whole gameweek (the advisory
    # lock is session-scoped), so the timeout covers a full run's queries
    _pool = await asyncpg.create_pool(
        db_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=settings.db_command_timeout,
    )
    return _pool


async def close_pool() -> None:
    """Close the database connection pool."""
    global _pool
    if _pool is not None:
        logger.info("Closing database connection pool")
        await _pool.close()
        _pool = None


def get_pool() -> asyncpg.Pool:
    """Get the current connection pool (must be initialized first)."""
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    return _pool


@asynccontextmanager
async def get_connection() -> AsyncGenerator[asyncpg.Connection, None]:
    """Get a pooled connection for the duration of one unit of work."""
    pool = get_pool()
    async with pool.acquire() as conn:
        yield conn
