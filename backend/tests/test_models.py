"""Tests for query parameter normalization."""

from __future__ import annotations

from datetime import UTC, datetime

from backend.config import settings
from backend.models.message import HistoryQuery, MessageQuery, MessageResponse
from engine.kernel.filters import DEFAULT_FILTERS
from engine.kernel.types import Message


class TestMessageQuery:
    def test_defaults(self):
        query = MessageQuery.from_raw({})
        assert query.limit == settings.MESSAGES_DEFAULT_LIMIT
        assert query.sort_direction == "desc"
        assert query.to_filters() == DEFAULT_FILTERS.with_changes(page_size=query.limit)

    def test_non_dict_params(self):
        assert MessageQuery.from_raw("limit=5") == MessageQuery.from_raw({})
        assert MessageQuery.from_raw(None) == MessageQuery.from_raw({})

    def test_camel_case_aliases(self):
        query = MessageQuery.from_raw(
            {"startDate": "2024-01-01", "endDate": "2024-01-31", "sortDirection": "asc", "limit": 5}
        )
        assert (query.start_date, query.end_date, query.sort_direction, query.limit) == (
            "2024-01-01",
            "2024-01-31",
            "asc",
            5,
        )

    def test_types_accept_string_or_list_and_drop_unknown(self):
        assert MessageQuery.from_raw({"types": "warn,bogus,info"}).types == ["info", "warn"]
        assert MessageQuery.from_raw({"types": ["debug"]}).types == ["debug"]
        assert MessageQuery.from_raw({"types": "bogus"}).types is None
        assert MessageQuery.from_raw({"types": 3}).types is None

    def test_malformed_values_never_raise(self):
        query = MessageQuery.from_raw(
            {"source": 12, "search": ["x"], "sortDirection": None, "limit": {"n": 1}, "extra": "ignored"}
        )
        assert query.source == ""
        assert query.search == ""
        assert query.sort_direction == "desc"
        assert query.limit == settings.MESSAGES_DEFAULT_LIMIT

    def test_limit_is_capped(self):
        assert MessageQuery.from_raw({"limit": "999999"}).limit == settings.MESSAGES_MAX_LIMIT


class TestHistoryQuery:
    def test_cursor_fields(self):
        query = HistoryQuery.from_raw({"before": "2024-03-01T09:00:00Z", "beforeId": "abc"})
        assert query.before == datetime(2024, 3, 1, 9, 0, tzinfo=UTC)
        assert query.before_id == "abc"

    def test_bad_cursor_is_dropped(self):
        query = HistoryQuery.from_raw({"before": "yesterday", "beforeId": ""})
        assert query.before is None
        assert query.before_id is None


def test_response_uses_camel_case_created_at():
    message = Message("m1", "warn", "cron", "late", datetime(2024, 3, 1, 9, 0, tzinfo=UTC))
    dumped = MessageResponse.from_message(message).model_dump(mode="json", by_alias=True)
    assert dumped == {
        "id": "m1",
        "type": "warn",
        "source": "cron",
        "text": "late",
        "createdAt": "2024-03-01T09:00:00Z",
    }
