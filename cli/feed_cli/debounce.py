"""Trailing-edge debounce for free-text filter input."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DELAY_SECONDS = 0.3


class Debouncer(Generic[T]):
    """
    Apply only the last value pushed within `delay_seconds`.

    Every push restarts the timer. Must be used from inside a running loop.
    """

    def __init__(self, apply: Callable[[T], Awaitable[None]], delay_seconds: float = DEFAULT_DELAY_SECONDS):
        self.apply = apply
        self.delay_seconds = delay_seconds
        self._handle: asyncio.TimerHandle | None = None
        self._value: T | None = None
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def push(self, value: T) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._value = value
        self._handle = asyncio.get_running_loop().call_later(self.delay_seconds, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._value = None

    async def flush(self) -> None:
        """Apply a pending value now and wait for any in-flight apply."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            value, self._value = self._value, None
            await self.apply(value)
        if self._task is not None:
            await self._task

    def _fire(self) -> None:
        self._handle = None
        value, self._value = self._value, None
        self._task = asyncio.get_running_loop().create_task(self.apply(value))
        self._task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        if task is self._task:
            self._task = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("debounced apply failed", exc_info=task.exception())
