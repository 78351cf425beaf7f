"""
Predicate compiler — FilterState → (Predicate, SortSpec).

One compiler serves the live publication, the historical endpoint, and the
client's local filtering. The predicate is plain data: `matches()` evaluates
it in memory, and the Postgres repo renders the same fields to SQL.

Rules:
  - a blank or empty field means "no constraint", never "match nothing"
  - malformed dates are ignored rather than rejected
  - search text is literal: regex metacharacters are escaped
  - the keyset cursor bounds createdAt strictly, in the sort direction
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from functools import cached_property
from typing import Literal

from engine.kernel.filters import FilterState
from engine.kernel.types import MESSAGE_TYPES, Message, SortDirection, parse_timestamp

_DAY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def parse_day_bound(value: str | None, boundary: Literal["start", "end"]) -> datetime | None:
    """
    Turn a `YYYY-MM-DD` string into the first or last instant of that local day.

    Other strings are tried as ISO-8601 timestamps and used as-is.
    Returns None when nothing sensible can be parsed.
    """
    if not isinstance(value, str) or not value:
        return None
    m = _DAY_RE.match(value)
    if m:
        year, month, day = (int(g) for g in m.groups())
        try:
            if boundary == "start":
                local = datetime(year, month, day, 0, 0, 0, 0)
            else:
                local = datetime(year, month, day, 23, 59, 59, 999999)
        except ValueError:
            return None
        return local.astimezone()
    return parse_timestamp(value)


@dataclass(frozen=True)
class Cursor:
    """Keyset position: the boundary record of the previously returned page."""

    created_at: datetime
    id: str | None = None
    direction: SortDirection = "desc"


@dataclass(frozen=True)
class SortSpec:
    direction: SortDirection = "desc"
    tiebreak: bool = False

    @property
    def descending(self) -> bool:
        return self.direction == "desc"

    def rank(self, message: Message) -> float:
        """Ascending rank in display order (createdAt only)."""
        ts = message.created_at.timestamp()
        return -ts if self.descending else ts

    def sort(self, messages: list[Message]) -> list[Message]:
        if self.tiebreak:
            return sorted(messages, key=lambda m: (m.created_at, m.id), reverse=self.descending)
        return sorted(messages, key=lambda m: m.created_at, reverse=self.descending)


@dataclass(frozen=True)
class Predicate:
    types: frozenset[str] | None = None
    source: str | None = None
    created_gte: datetime | None = None
    created_lte: datetime | None = None
    search: str | None = None
    cursor: Cursor | None = None

    @cached_property
    def pattern(self) -> re.Pattern[str] | None:
        if self.search is None:
            return None
        return re.compile(re.escape(self.search), re.IGNORECASE)

    @property
    def is_empty(self) -> bool:
        return self == MATCH_ALL

    def matches(self, message: Message) -> bool:
        if self.types is not None and message.type not in self.types:
            return False
        if self.source is not None and message.source != self.source:
            return False
        if self.created_gte is not None and message.created_at < self.created_gte:
            return False
        if self.created_lte is not None and message.created_at > self.created_lte:
            return False
        if self.cursor is not None and not self._beyond_cursor(message):
            return False
        if self.pattern is not None and not self.pattern.search(message.text):
            return False
        return True

    def _beyond_cursor(self, message: Message) -> bool:
        cursor = self.cursor
        if cursor.id is not None:
            here, there = (message.created_at, message.id), (cursor.created_at, cursor.id)
        else:
            here, there = message.created_at, cursor.created_at
        if cursor.direction == "desc":
            return here < there
        return here > there


MATCH_ALL = Predicate()


def compile_filters(
    filters: FilterState,
    *,
    before: datetime | None = None,
    before_id: str | None = None,
    tiebreak: bool = False,
) -> tuple[Predicate, SortSpec]:
    """
    Compile a FilterState into a store predicate and sort spec.

    `before` (and optionally `before_id`) add the keyset cursor used by the
    historical endpoint; `tiebreak` appends identity to the sort so that
    cursor paging sees a total order.
    """
    types: frozenset[str] | None = None
    enabled = frozenset(t for t in filters.types if t in MESSAGE_TYPES)
    if enabled and len(enabled) < len(MESSAGE_TYPES):
        types = enabled

    source = filters.source.strip() or None
    search = filters.search.strip() or None

    cursor = None
    if before is not None:
        cursor = Cursor(created_at=before, id=before_id or None, direction=filters.sort_direction)

    predicate = Predicate(
        types=types,
        source=source,
        created_gte=parse_day_bound(filters.start_date, "start"),
        created_lte=parse_day_bound(filters.end_date, "end"),
        search=search,
        cursor=cursor,
    )
    return predicate, SortSpec(direction=filters.sort_direction, tiebreak=tiebreak)
