"""
Dual-source merge — the live window plus the paused-mode scratch cache.

The live window is whatever the publication has pushed; the scratch cache
holds pages fetched over HTTP while the live channel is suspended. Both are
filtered by the same predicate, merged by identity (scratch wins), and
sorted by createdAt. Equal timestamps keep merge order: no identity
tiebreaker is applied at this layer.
"""

from __future__ import annotations

from collections.abc import Iterable

from engine.kernel.predicate import Predicate, SortSpec
from engine.kernel.types import Message, SortDirection


def merge_views(
    live: Iterable[Message],
    scratch: Iterable[Message],
    predicate: Predicate,
    sort_direction: SortDirection,
    paused: bool,
) -> list[Message]:
    sort = SortSpec(direction=sort_direction)
    if not paused:
        return sort.sort([m for m in live if predicate.matches(m)])

    by_id: dict[str, Message] = {}
    for m in live:
        if predicate.matches(m):
            by_id[m.id] = m
    for m in scratch:
        if predicate.matches(m):
            by_id[m.id] = m
    return sort.sort(list(by_id.values()))


class ScratchCache:
    """Disposable store of historically fetched messages for one paused session."""

    def __init__(self) -> None:
        self._messages: dict[str, Message] = {}

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    def values(self) -> list[Message]:
        return list(self._messages.values())

    def insert_new(self, messages: Iterable[Message]) -> int:
        """Insert messages whose id is not yet cached. Returns how many were added."""
        added = 0
        for message in messages:
            if message.id in self._messages:
                continue
            self._messages[message.id] = message
            added += 1
        return added

    def clear(self) -> None:
        self._messages.clear()


class Pager:
    """Monotonic "load more" growth of the live window limit."""

    def __init__(self, page_size: int) -> None:
        self.page_size = page_size
        self.pages = 1

    @property
    def limit(self) -> int:
        return max(self.page_size, self.pages * self.page_size)

    def grow(self) -> int:
        self.pages += 1
        return self.limit

    def reset(self, page_size: int | None = None) -> None:
        if page_size is not None:
            self.page_size = page_size
        self.pages = 1
