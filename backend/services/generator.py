"""Synthetic message generator — inserts a random message on a fixed interval."""

from __future__ import annotations

import asyncio
import logging
import random

from engine.kernel.store import MessageStore
from engine.kernel.types import MESSAGE_TYPES, Message

logger = logging.getLogger(__name__)

SOURCES: tuple[str, ...] = ("sensor-1", "sensor-2", "api", "worker", "cron", "gateway")
WORDS: tuple[str, ...] = ("alpha", "beta", "gamma", "delta", "epsilon", "zeta", "kappa", "lambda", "omega")


def random_text(rng: random.Random) -> str:
    """5 to 19 words drawn from WORDS."""
    length = 5 + rng.randrange(15)
    return " ".join(rng.choice(WORDS) for _ in range(length))


class MessageGenerator:
    """
    Background producer of synthetic messages.

    The feed core has no contract with it beyond "records appear over time".
    """

    def __init__(self, store: MessageStore, interval_seconds: float, rng: random.Random | None = None) -> None:
        self.store = store
        self.interval_seconds = interval_seconds
        self.rng = rng or random.Random()

    async def insert_random(self) -> Message:
        return await self.store.insert(
            type=self.rng.choice(MESSAGE_TYPES),
            source=self.rng.choice(SOURCES),
            text=random_text(self.rng),
        )

    async def run(self) -> None:
        """Insert forever. Cancel the task to stop."""
        logger.info("generator: inserting every %.0fms", self.interval_seconds * 1000)
        while True:
            try:
                await self.insert_random()
            except Exception:
                logger.exception("generator: insert failed")
            await asyncio.sleep(self.interval_seconds)
