"""
Message store lifecycle.

Postgres (via MessageRepo) when DATABASE_URL is set, otherwise an in-memory
store. Routes get the store through the get_store() dependency so tests can
override it.
"""

from __future__ import annotations

import logging

from backend import db
from backend.config import settings
from backend.repos.message_repo import MessageRepo
from engine.kernel.store import MemoryMessageStore, MessageStore

logger = logging.getLogger(__name__)

_store: MessageStore | None = None


async def init_store() -> MessageStore:
    """Create the process-wide store. Called once at application startup."""
    global _store
    if settings.DATABASE_URL:
        await db.init_pool()
        _store = MessageRepo()
        logger.info("store: using Postgres")
    else:
        _store = MemoryMessageStore()
        logger.info("store: DATABASE_URL not set, using in-memory store")
    return _store


async def close_store() -> None:
    """Release the store. Called at application shutdown."""
    global _store
    if isinstance(_store, MessageRepo):
        await _store.close()
        await db.close_pool()
    _store = None


def get_store() -> MessageStore:
    if _store is None:
        raise RuntimeError("Message store not initialized. Call init_store() first.")
    return _store
