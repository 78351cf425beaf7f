"""
Pytest configuration and fixtures for Livefeed backend tests.

Tests run against MemoryMessageStore through the get_store() override.
Postgres repo tests use TEST_DATABASE_URL and skip without it.
"""

from __future__ import annotations

import os

# Set test environment variables before importing config
os.environ["DATABASE_URL"] = ""
os.environ["GENERATOR_INTERVAL_MS"] = "0"

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from backend.main import app  # noqa: E402
from backend.store import get_store  # noqa: E402
from engine.kernel.store import MemoryMessageStore  # noqa: E402


@pytest.fixture
def store():
    """Fresh in-memory store wired into the app."""
    store = MemoryMessageStore()
    app.dependency_overrides[get_store] = lambda: store
    yield store
    app.dependency_overrides.pop(get_store, None)


@pytest_asyncio.fixture(loop_scope="session")
async def async_client(store):
    """Async HTTP client against the ASGI app."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
