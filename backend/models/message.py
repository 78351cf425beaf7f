"""Message models — wire shapes and normalized query parameters."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from backend.config import settings
from engine.kernel.filters import FilterState
from engine.kernel.limits import clamp_limit
from engine.kernel.types import MESSAGE_TYPES, Message, SortDirection, normalize_sort_direction, parse_timestamp


class MessageResponse(BaseModel):
    """What the API returns for a single message."""

    id: str
    type: str
    source: str
    text: str
    created_at: datetime = Field(serialization_alias="createdAt")

    @classmethod
    def from_message(cls, message: Message) -> MessageResponse:
        return cls(
            id=message.id,
            type=message.type,
            source=message.source,
            text=message.text,
            created_at=message.created_at,
        )


class MessageQuery(BaseModel):
    """
    Filter parameters sent by the client, for both the live subscription and
    the history endpoint.

    Nothing is ever rejected: every field normalizes malformed input to its
    "no constraint" value or its default.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    types: list[str] | None = None
    source: str = ""
    search: str = ""
    start_date: str = Field(default="", alias="startDate")
    end_date: str = Field(default="", alias="endDate")
    sort_direction: SortDirection = Field(default="desc", alias="sortDirection")
    limit: int = settings.MESSAGES_DEFAULT_LIMIT

    @field_validator("types", mode="before")
    @classmethod
    def _normalize_types(cls, value: Any) -> list[str] | None:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, list | tuple):
            return None
        known = [t for t in MESSAGE_TYPES if t in value]
        return known or None

    @field_validator("source", "search", "start_date", "end_date", mode="before")
    @classmethod
    def _normalize_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("sort_direction", mode="before")
    @classmethod
    def _normalize_sort(cls, value: Any) -> str:
        return normalize_sort_direction(value)

    @field_validator("limit", mode="before")
    @classmethod
    def _clamp_limit(cls, value: Any) -> int:
        return clamp_limit(value, settings.MESSAGES_DEFAULT_LIMIT, settings.MESSAGES_MAX_LIMIT)

    @classmethod
    def from_raw(cls, raw: Any) -> MessageQuery:
        return cls.model_validate(raw if isinstance(raw, dict) else {})

    def to_filters(self) -> FilterState:
        return FilterState(
            types=frozenset(self.types) if self.types else frozenset(MESSAGE_TYPES),
            source=self.source,
            search=self.search,
            start_date=self.start_date,
            end_date=self.end_date,
            sort_direction=self.sort_direction,
            page_size=self.limit,
        )


class HistoryQuery(MessageQuery):
    """Query parameters for GET /api/messages, adding the keyset cursor."""

    before: datetime | None = None
    before_id: str | None = Field(default=None, alias="beforeId")

    @field_validator("before", mode="before")
    @classmethod
    def _parse_before(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("before_id", mode="before")
    @classmethod
    def _normalize_before_id(cls, value: Any) -> str | None:
        return value if isinstance(value, str) and value else None
