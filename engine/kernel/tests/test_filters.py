"""
FilterState tests: wire query and persisted-state normalization.

A corrupt persisted blob must never raise; each field falls back on its own.
"""

import pytest

from engine.kernel.filters import DEFAULT_FILTERS, DEFAULT_PAGE_SIZE, FilterState


class TestToQuery:
    def test_defaults_send_nothing(self):
        assert DEFAULT_FILTERS.to_query() == {}

    def test_partial_types_are_comma_joined_in_canonical_order(self):
        filters = FilterState(types=frozenset({"error", "info"}))
        assert filters.to_query() == {"types": "info,error"}

    def test_empty_types_are_not_sent(self):
        assert FilterState(types=frozenset()).to_query() == {}

    def test_text_fields_are_trimmed(self):
        filters = FilterState(source=" api ", search="  gamma ", start_date="2024-01-01", end_date="2024-01-02")
        assert filters.to_query() == {
            "source": "api",
            "search": "gamma",
            "startDate": "2024-01-01",
            "endDate": "2024-01-02",
        }


class TestPersistence:
    def test_round_trip(self):
        filters = FilterState(
            types=frozenset({"warn"}),
            source="cron",
            search="omega",
            start_date="2024-02-01",
            sort_direction="asc",
            page_size=100,
        )
        assert FilterState.from_persisted(filters.to_persisted()) == filters

    def test_persisted_types_are_a_flag_map(self):
        persisted = FilterState(types=frozenset({"info"})).to_persisted()
        assert persisted["types"] == {"info": True, "warn": False, "error": False, "debug": False}

    @pytest.mark.parametrize("raw", [None, "garbage", 42, ["types"]])
    def test_non_dict_yields_defaults(self, raw):
        assert FilterState.from_persisted(raw) == DEFAULT_FILTERS

    def test_fields_fall_back_independently(self):
        restored = FilterState.from_persisted(
            {
                "types": "all",
                "source": 7,
                "search": "kept",
                "startDate": None,
                "sortDirection": "sideways",
                "pageSize": "50",
            }
        )
        assert restored.types == DEFAULT_FILTERS.types
        assert restored.source == ""
        assert restored.search == "kept"
        assert restored.start_date == ""
        assert restored.sort_direction == "desc"
        assert restored.page_size == DEFAULT_PAGE_SIZE

    def test_missing_type_flags_default_to_enabled(self):
        restored = FilterState.from_persisted({"types": {"debug": False}})
        assert restored.types == frozenset({"info", "warn", "error"})

    @pytest.mark.parametrize("page_size", [0, -1, 5000, True, 2.5])
    def test_out_of_range_page_size(self, page_size):
        assert FilterState.from_persisted({"pageSize": page_size}).page_size == DEFAULT_PAGE_SIZE
