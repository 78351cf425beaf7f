"""
Publication engine — incrementally maintained result sets for live clients.

Two publications, one instance per client subscription:

  MessagesPublication  — the rolling top-N window of messages matching the
                         client's filters, in the requested createdAt order.
  SourcesPublication   — the append-only list of distinct `source` values.

Each runs as an async generator of Delta objects. Store handlers only enqueue
changes; the window logic runs in the generator, so handlers never block.
Observation is held with `async with store.observe(...)` for exactly as
long as the generator runs, and is released when it is closed or cancelled.
"""

from __future__ import annotations

import asyncio
import bisect
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Literal

from backend.models.message import MessageQuery
from engine.kernel.predicate import MATCH_ALL, SortSpec, compile_filters
from engine.kernel.store import MessageStore
from engine.kernel.types import Change, Message

logger = logging.getLogger(__name__)

MESSAGES_COLLECTION = "messages"
SOURCES_COLLECTION = "message_sources"


@dataclass(frozen=True)
class Delta:
    """One outbound change to a client-side collection."""

    type: Literal["added", "changed", "removed", "ready"]
    collection: str = ""
    id: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    before: str | None = None

    def to_payload(self, sub_id: str) -> dict[str, Any]:
        if self.type == "ready":
            return {"type": "ready", "sub": sub_id}
        payload: dict[str, Any] = {
            "type": self.type,
            "sub": sub_id,
            "collection": self.collection,
            "id": self.id,
        }
        if self.type != "removed":
            payload["fields"] = self.fields
        if self.type == "added":
            payload["before"] = self.before
        return payload


def _message_fields(message: Message) -> dict[str, Any]:
    wire = message.to_wire()
    wire.pop("id")
    return wire


class MessageWindow:
    """
    The bounded, ordered top-N window.

    Ordering is by createdAt only; equal timestamps keep arrival order.
    Mutators return the deltas they produce, in the order the client must
    apply them.
    """

    def __init__(self, sort: SortSpec, limit: int) -> None:
        self.sort = sort
        self.limit = limit
        self._items: list[Message] = []
        self._ranks: list[float] = []

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, message_id: object) -> bool:
        return any(m.id == message_id for m in self._items)

    @property
    def items(self) -> list[Message]:
        return list(self._items)

    @property
    def is_full(self) -> bool:
        return len(self._items) >= self.limit

    def add(self, message: Message) -> list[Delta]:
        if message.id in self:
            return []
        rank = self.sort.rank(message)
        pos = bisect.bisect_right(self._ranks, rank)
        if pos >= self.limit:
            return []
        self._items.insert(pos, message)
        self._ranks.insert(pos, rank)
        before = self._items[pos + 1].id if pos + 1 < len(self._items) else None
        deltas = [Delta("added", MESSAGES_COLLECTION, message.id, _message_fields(message), before)]
        while len(self._items) > self.limit:
            evicted = self._items.pop()
            self._ranks.pop()
            deltas.append(Delta("removed", MESSAGES_COLLECTION, evicted.id))
        return deltas

    def change(self, message: Message) -> list[Delta]:
        for i, existing in enumerate(self._items):
            if existing.id == message.id:
                self._items[i] = message
                return [Delta("changed", MESSAGES_COLLECTION, message.id, _message_fields(message))]
        return self.add(message)

    def remove(self, message_id: str) -> list[Delta]:
        for i, existing in enumerate(self._items):
            if existing.id == message_id:
                del self._items[i]
                del self._ranks[i]
                return [Delta("removed", MESSAGES_COLLECTION, message_id)]
        return []


class MessagesPublication:
    """Rolling window of messages for one subscription."""

    def __init__(self, store: MessageStore, params: MessageQuery) -> None:
        self.store = store
        self.params = params
        self.predicate, self.sort = compile_filters(params.to_filters())
        self.window = MessageWindow(self.sort, params.limit)
        self._changes: asyncio.Queue[Change] = asyncio.Queue()

    def _on_change(self, change: Change) -> None:
        self._changes.put_nowait(change)

    async def run(self) -> AsyncIterator[Delta]:
        # Observe first, then query, so nothing inserted in between is lost
        async with self.store.observe(self.predicate, self._on_change):
            for message in await self.store.find(self.predicate, self.sort, self.window.limit):
                for delta in self.window.add(message):
                    yield delta
            yield Delta("ready")
            logger.debug(
                "publication: messages ready limit=%d sort=%s size=%d",
                self.window.limit,
                self.sort.direction,
                len(self.window),
            )

            while True:
                change = await self._changes.get()
                for delta in await self._apply(change):
                    yield delta

    async def _apply(self, change: Change) -> list[Delta]:
        if change.kind == "added":
            return self.window.add(change.message)
        if change.kind == "changed":
            return self.window.change(change.message)

        deltas = self.window.remove(change.id)
        if deltas and not self.window.is_full:
            deltas.extend(await self._refill())
        return deltas

    async def _refill(self) -> list[Delta]:
        """Top the window back up after a removal. Known ids are skipped by add()."""
        deltas: list[Delta] = []
        for message in await self.store.find(self.predicate, self.sort, self.window.limit):
            deltas.extend(self.window.add(message))
        return deltas


class SourcesPublication:
    """Distinct sources, each announced once on first occurrence."""

    def __init__(self, store: MessageStore) -> None:
        self.store = store
        self.known: set[str] = set()
        self._pending: asyncio.Queue[str] = asyncio.Queue()

    def _on_change(self, change: Change) -> None:
        if change.kind == "added" and change.message is not None:
            self._pending.put_nowait(change.message.source)

    def _announce(self, source: str) -> Delta | None:
        if source in self.known:
            return None
        self.known.add(source)
        return Delta("added", SOURCES_COLLECTION, source, {"value": source})

    async def run(self) -> AsyncIterator[Delta]:
        # Observe before seeding: inserts racing the seed query queue up here
        async with self.store.observe(MATCH_ALL, self._on_change):
            for source in await self.store.distinct_sources():
                if delta := self._announce(source):
                    yield delta
            while not self._pending.empty():
                if delta := self._announce(self._pending.get_nowait()):
                    yield delta
            yield Delta("ready")
            while True:
                if delta := self._announce(await self._pending.get()):
                    yield delta
