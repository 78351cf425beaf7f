"""
Filter state — the user-facing description of what the feed should show.

The same FilterState drives the live subscription parameters, the local
predicate, and the historical fetch query string. It also round-trips through
the client's persisted state file, so `from_persisted` must never raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from engine.kernel.limits import MAX_LIMIT
from engine.kernel.types import MESSAGE_TYPES, SortDirection, normalize_sort_direction

DEFAULT_PAGE_SIZE = 50
PAGE_SIZE_CHOICES: tuple[int, ...] = (25, 50, 100, 200, 500)


@dataclass(frozen=True)
class FilterState:
    types: frozenset[str] = field(default_factory=lambda: frozenset(MESSAGE_TYPES))
    source: str = ""
    search: str = ""
    start_date: str = ""  # YYYY-MM-DD
    end_date: str = ""  # YYYY-MM-DD
    sort_direction: SortDirection = "desc"
    page_size: int = DEFAULT_PAGE_SIZE

    def with_changes(self, **changes: Any) -> FilterState:
        return replace(self, **changes)

    def enabled_types(self) -> list[str]:
        """Enabled types in canonical order."""
        return [t for t in MESSAGE_TYPES if t in self.types]

    def to_query(self) -> dict[str, Any]:
        """
        Wire parameters for the fine-grained filter fields.

        Blank fields are left out entirely. Types are only sent when they
        narrow the feed (some, but not all, enabled).
        """
        params: dict[str, Any] = {}
        enabled = self.enabled_types()
        if 0 < len(enabled) < len(MESSAGE_TYPES):
            params["types"] = ",".join(enabled)
        if self.source.strip():
            params["source"] = self.source.strip()
        if self.search.strip():
            params["search"] = self.search.strip()
        if self.start_date:
            params["startDate"] = self.start_date
        if self.end_date:
            params["endDate"] = self.end_date
        return params

    def to_persisted(self) -> dict[str, Any]:
        return {
            "types": {t: t in self.types for t in MESSAGE_TYPES},
            "source": self.source,
            "search": self.search,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "sortDirection": self.sort_direction,
            "pageSize": self.page_size,
        }

    @classmethod
    def from_persisted(cls, raw: Any) -> FilterState:
        """
        Restore filters saved by `to_persisted`.

        Each field falls back to its default on its own; a corrupt blob
        yields DEFAULT_FILTERS.
        """
        if not isinstance(raw, dict):
            return DEFAULT_FILTERS

        types = DEFAULT_FILTERS.types
        raw_types = raw.get("types")
        if isinstance(raw_types, dict):
            types = frozenset(t for t in MESSAGE_TYPES if raw_types.get(t, True) is not False)

        page_size = raw.get("pageSize")
        if isinstance(page_size, bool) or not isinstance(page_size, int) or not 0 < page_size <= MAX_LIMIT:
            page_size = DEFAULT_PAGE_SIZE

        return cls(
            types=types,
            source=_str_or_blank(raw.get("source")),
            search=_str_or_blank(raw.get("search")),
            start_date=_str_or_blank(raw.get("startDate")),
            end_date=_str_or_blank(raw.get("endDate")),
            sort_direction=normalize_sort_direction(raw.get("sortDirection")),
            page_size=page_size,
        )


def _str_or_blank(value: Any) -> str:
    return value if isinstance(value, str) else ""


DEFAULT_FILTERS = FilterState()
