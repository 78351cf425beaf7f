"""
Engine kernel test configuration.

Kernel tests are pure or run against MemoryMessageStore; nothing here needs
a database.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from engine.kernel.types import Message

BASE_TIME = datetime(2024, 1, 5, 12, 0, tzinfo=UTC)


def make_message(
    id: str,
    seconds: float = 0,
    *,
    type: str = "info",
    source: str = "api",
    text: str = "alpha beta",
    at: datetime | None = None,
) -> Message:
    return Message(
        id=id,
        type=type,
        source=source,
        text=text,
        created_at=at or BASE_TIME + timedelta(seconds=seconds),
    )


@pytest.fixture
def msg():
    return make_message
