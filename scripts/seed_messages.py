#!/usr/bin/env python3
"""
Backfill the messages table with synthetic history.

Usage:
    python scripts/seed_messages.py [count] [days]

Inserts `count` messages (default 1000) spread evenly over the last `days`
days (default 7), so there is something to page through while paused.
Needs DATABASE_URL.
"""

import asyncio
import random
import sys
from datetime import timedelta

# Add project root to path
sys.path.insert(0, ".")

from backend.db import close_pool, init_pool
from backend.repos.message_repo import MessageRepo
from backend.services.generator import SOURCES, random_text
from engine.kernel.types import MESSAGE_TYPES, now_utc


async def seed(count: int, days: int) -> None:
    repo = MessageRepo()
    rng = random.Random()
    start = now_utc() - timedelta(days=days)
    step = timedelta(days=days) / max(count, 1)

    for i in range(count):
        await repo.insert(
            type=rng.choice(MESSAGE_TYPES),
            source=rng.choice(SOURCES),
            text=random_text(rng),
            created_at=start + step * i,
        )


async def main():
    count = int(sys.argv[1]) if len(sys.argv) >= 2 else 1000
    days = int(sys.argv[2]) if len(sys.argv) >= 3 else 7

    await init_pool()
    try:
        await seed(count, days)
        print(f"Inserted {count} messages over the last {days} days")
    finally:
        await close_pool()


if __name__ == "__main__":
    asyncio.run(main())
