"""
Database connection pool and scoped connection managers.

All database access goes through system_conn() or listener_conn().
Never use pool.acquire() directly outside this module.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import asyncpg

from backend.config import settings

pool: asyncpg.Pool | None = None


async def init_pool(dsn: str | None = None) -> None:
    """
    Initialize the connection pool.
    Called once at application startup.
    """
    global pool
    pool = await asyncpg.create_pool(
        dsn=dsn or settings.DATABASE_URL,
        min_size=2,
        max_size=20,
        command_timeout=60,
        init=_init_connection,
    )


async def close_pool() -> None:
    """
    Close the connection pool.
    Called at application shutdown.
    """
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    """
    Initialize each new connection.
    Message ids are opaque strings to the rest of the app, so UUIDs decode to str.
    """
    await conn.set_type_codec(
        "uuid",
        encoder=str,
        decoder=str,
        schema="pg_catalog",
    )


@asynccontextmanager
async def system_conn():
    """
    Acquire a pooled connection inside a transaction.

    Usage:
        async with system_conn() as conn:
            rows = await conn.fetch("SELECT * FROM messages ORDER BY created_at DESC LIMIT $1", 30)

    Yields:
        asyncpg.Connection
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire() as conn:
        async with conn.transaction():
            yield conn


@asynccontextmanager
async def listener_conn():
    """
    Acquire a pooled connection for LISTEN, outside any transaction.

    Notifications are only delivered between transactions, so the connection
    is held idle for as long as the block runs. Returned to the pool on exit.

    Yields:
        asyncpg.Connection
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire() as conn:
        yield conn
