"""
Livefeed configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os

from engine.kernel.limits import DEFAULT_LIMIT, MAX_LIMIT


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


class Settings:
    """Application settings from environment variables."""

    # Database (empty = in-memory store)
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Windows and pages
    MESSAGES_DEFAULT_LIMIT: int = _int_env("MESSAGES_DEFAULT_LIMIT", DEFAULT_LIMIT)
    MESSAGES_MAX_LIMIT: int = _int_env("MESSAGES_MAX_LIMIT", MAX_LIMIT)

    # Synthetic message generator (0 disables)
    GENERATOR_INTERVAL_MS: int = _int_env("GENERATOR_INTERVAL_MS", 500)


# Singleton instance
settings = Settings()

if settings.MESSAGES_DEFAULT_LIMIT <= 0 or settings.MESSAGES_MAX_LIMIT < settings.MESSAGES_DEFAULT_LIMIT:
    raise RuntimeError("MESSAGES_DEFAULT_LIMIT must be positive and not exceed MESSAGES_MAX_LIMIT")
