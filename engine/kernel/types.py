"""
Livefeed Kernel — Shared Types

Data classes used across the predicate compiler, the stores, and the merge
engine. These are the contracts that bind the kernel together.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

MessageType = Literal["info", "warn", "error", "debug"]
SortDirection = Literal["asc", "desc"]
ChangeKind = Literal["added", "changed", "removed"]

MESSAGE_TYPES: tuple[str, ...] = ("info", "warn", "error", "debug")


def now_utc() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    Naive values are read as local time. Anything unparseable returns None.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def normalize_sort_direction(value: Any) -> SortDirection:
    return "asc" if value == "asc" else "desc"


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Message:
    """An immutable feed record. Identity and timestamp are owned by the store."""

    id: str
    type: str
    source: str
    text: str
    created_at: datetime

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "text": self.text,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Message | None:
        """Build a Message from its wire form. Returns None for unusable payloads."""
        created_at = parse_timestamp(data.get("createdAt"))
        message_id = data.get("id")
        if created_at is None or not isinstance(message_id, str) or not message_id:
            return None
        return cls(
            id=message_id,
            type=str(data.get("type", "")),
            source=str(data.get("source", "")),
            text=str(data.get("text", "")),
            created_at=created_at,
        )


# ---------------------------------------------------------------------------
# Change notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Change:
    """A single store mutation as seen by an observer."""

    kind: ChangeKind
    id: str
    message: Message | None = None

    @classmethod
    def added(cls, message: Message) -> Change:
        return cls(kind="added", id=message.id, message=message)

    @classmethod
    def changed(cls, message: Message) -> Change:
        return cls(kind="changed", id=message.id, message=message)

    @classmethod
    def removed(cls, message_id: str) -> Change:
        return cls(kind="removed", id=message_id)
