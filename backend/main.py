"""
Livefeed FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.config import settings
from backend.routes import messages as message_routes
from backend.routes import ws as ws_routes
from backend.services.generator import MessageGenerator
from backend.store import close_store, init_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown logic:
    - Initialize the message store
    - Start the synthetic message generator (unless disabled)
    - Close the store on shutdown
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Startup
    store = await init_store()

    generator_handle: asyncio.Task | None = None
    if settings.GENERATOR_INTERVAL_MS > 0:
        generator = MessageGenerator(store, settings.GENERATOR_INTERVAL_MS / 1000)
        generator_handle = asyncio.create_task(generator.run())
        logger.info("Message generator started")

    yield

    # Shutdown
    if generator_handle is not None:
        generator_handle.cancel()
        try:
            await generator_handle
        except asyncio.CancelledError:
            logger.info("Message generator stopped")

    await close_store()
    logger.info("Message store closed")


app = FastAPI(
    title="Livefeed",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

# Register routes
app.include_router(message_routes.router)
app.include_router(ws_routes.router)


@app.get("/health")
async def health():
    """Health check endpoint for uptime monitoring."""
    return {"status": "ok"}
