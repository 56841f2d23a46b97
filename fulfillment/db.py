from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg

from .config import settings

_pool: asyncpg.Pool | None = None


async def init_db_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is not set")
        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=1,
            max_size=settings.db_pool_max_size,
            command_timeout=30,
        )
    return _pool


async def close_db_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def get_pool() -> asyncpg.Pool:
    if _pool is None:
        return await init_db_pool()
    return _pool


@asynccontextmanager
async def connection() -> AsyncIterator[asyncpg.Connection]:
    """Acquire a pooled connection for a single unit of work."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        yield conn


async def ping() -> bool:
    """True when the database answers a trivial query."""
    try:
        async with connection() as conn:
            return await conn.fetchval("SELECT 1;", timeout=5) == 1
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, RuntimeError):
        return False
