"""
Record store adapter — the seam between the kernel and whatever holds messages.

A store supports three things:
  insert   — append a new message; the store assigns id and timestamp
  find     — point/range query with a Predicate, SortSpec and limit
  observe  — scoped change observation; handlers receive Change objects
  distinct_sources — every `source` value, in order of first occurrence

`observe` is an async context manager. The observation is released when the
block exits, on every exit path. Handlers run on the event loop, synchronously
with the store's dispatch, and must not block.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime
from typing import Protocol

from engine.kernel.predicate import MATCH_ALL, Predicate, SortSpec
from engine.kernel.types import Change, Message, now_utc

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[Change], None]


class MessageStore(Protocol):
    async def insert(
        self,
        type: str,
        source: str,
        text: str,
        created_at: datetime | None = None,
    ) -> Message: ...

    async def find(
        self,
        predicate: Predicate = MATCH_ALL,
        sort: SortSpec = SortSpec(),
        limit: int | None = None,
    ) -> list[Message]: ...

    async def distinct_sources(self) -> list[str]: ...

    def observe(
        self,
        predicate: Predicate,
        handler: ChangeHandler,
        *,
        initial: bool = False,
    ) -> AbstractAsyncContextManager[Observer]: ...


class Observer:
    """
    One registered change observation.

    With `buffering=True` the observer holds live changes until `replay()`
    has delivered the initial result set, then drops any id it already sent.
    """

    def __init__(self, predicate: Predicate, handler: ChangeHandler, *, buffering: bool = False):
        self.predicate = predicate
        self.handler = handler
        self._buffer: list[Change] | None = [] if buffering else None

    def deliver(self, change: Change) -> None:
        if self._buffer is not None:
            self._buffer.append(change)
            return
        if change.kind == "removed":
            self.handler(change)
        elif self.predicate.matches(change.message):
            self.handler(change)
        elif change.kind == "changed":
            # Changed out of the result set
            self.handler(Change.removed(change.id))

    def replay(self, messages: Iterable[Message]) -> None:
        seen: set[str] = set()
        for message in messages:
            seen.add(message.id)
            self.handler(Change.added(message))
        pending, self._buffer = self._buffer or [], None
        for change in pending:
            if change.kind == "added" and change.id in seen:
                continue
            self.deliver(change)


def dispatch(observers: Iterable[Observer], change: Change) -> None:
    """Deliver a change to every observer; a failing handler does not stop the others."""
    for observer in list(observers):
        try:
            observer.deliver(change)
        except Exception:
            logger.exception("store: observer handler failed for %s %s", change.kind, change.id)


class MemoryMessageStore:
    """In-memory store for development and tests."""

    def __init__(self) -> None:
        self.messages: dict[str, Message] = {}
        self._observers: set[Observer] = set()

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    async def insert(
        self,
        type: str,
        source: str,
        text: str,
        created_at: datetime | None = None,
    ) -> Message:
        message = Message(
            id=str(uuid.uuid4()),
            type=type,
            source=source,
            text=text,
            created_at=created_at or now_utc(),
        )
        self.messages[message.id] = message
        dispatch(self._observers, Change.added(message))
        return message

    async def remove(self, message_id: str) -> bool:
        if self.messages.pop(message_id, None) is None:
            return False
        dispatch(self._observers, Change.removed(message_id))
        return True

    async def find(
        self,
        predicate: Predicate = MATCH_ALL,
        sort: SortSpec = SortSpec(),
        limit: int | None = None,
    ) -> list[Message]:
        matched = sort.sort([m for m in self.messages.values() if predicate.matches(m)])
        return matched if limit is None else matched[:limit]

    async def distinct_sources(self) -> list[str]:
        first: dict[str, datetime] = {}
        for message in self.messages.values():
            if message.source not in first or message.created_at < first[message.source]:
                first[message.source] = message.created_at
        return sorted(first, key=lambda source: (first[source], source))

    @asynccontextmanager
    async def observe(
        self,
        predicate: Predicate,
        handler: ChangeHandler,
        *,
        initial: bool = False,
    ) -> AsyncIterator[Observer]:
        observer = Observer(predicate, handler, buffering=initial)
        self._observers.add(observer)
        try:
            if initial:
                observer.replay(await self.find(predicate, SortSpec("asc", tiebreak=True)))
            yield observer
        finally:
            self._observers.discard(observer)
