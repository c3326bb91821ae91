"""Date preset resolution tests."""

from datetime import datetime, timedelta, timezone

import pytest

from pytablecraft._dates import (
    DatePreset,
    build_date_preset_condition,
    is_date_preset,
    resolve_date_preset,
)
from pytablecraft._sql import Fragment
from pytablecraft.dialect.postgres import PostgresDialect

UTC = timezone.utc

# Wednesday
NOW = datetime(2024, 5, 15, 13, 30, tzinfo=UTC)


def day(y, m, d):
    return datetime(y, m, d, tzinfo=UTC)


class TestResolve:
    @pytest.mark.parametrize(
        "preset,start,end",
        [
            pytest.param("today", day(2024, 5, 15), day(2024, 5, 16), id="today"),
            pytest.param("yesterday", day(2024, 5, 14), day(2024, 5, 15), id="yesterday"),
            pytest.param("last7days", day(2024, 5, 8), day(2024, 5, 16), id="last7days"),
            pytest.param("last30days", day(2024, 4, 15), day(2024, 5, 16), id="last30days"),
            pytest.param("thisWeek", day(2024, 5, 13), day(2024, 5, 16), id="this_week"),
            pytest.param("lastWeek", day(2024, 5, 6), day(2024, 5, 13), id="last_week"),
            pytest.param("thisMonth", day(2024, 5, 1), day(2024, 5, 16), id="this_month"),
            pytest.param("lastMonth", day(2024, 4, 1), day(2024, 5, 1), id="last_month"),
            pytest.param("thisQuarter", day(2024, 4, 1), day(2024, 5, 16), id="this_quarter"),
            pytest.param("lastQuarter", day(2024, 1, 1), day(2024, 4, 1), id="last_quarter"),
            pytest.param("thisYear", day(2024, 1, 1), day(2024, 5, 16), id="this_year"),
            pytest.param("lastYear", day(2023, 1, 1), day(2024, 1, 1), id="last_year"),
        ],
    )
    def test_ranges(self, preset, start, end):
        rng = resolve_date_preset(preset, NOW)
        assert (rng.start, rng.end) == (start, end)

    def test_ranges_are_half_open(self):
        rng = resolve_date_preset(DatePreset.TODAY, NOW)
        assert rng.end - rng.start == timedelta(days=1)

    def test_last_month_across_year(self):
        rng = resolve_date_preset("lastMonth", day(2024, 1, 20))
        assert (rng.start, rng.end) == (day(2023, 12, 1), day(2024, 1, 1))

    def test_last_quarter_across_year(self):
        rng = resolve_date_preset("lastQuarter", day(2024, 2, 10))
        assert (rng.start, rng.end) == (day(2023, 10, 1), day(2024, 1, 1))

    def test_naive_now_treated_as_utc(self):
        rng = resolve_date_preset("today", datetime(2024, 5, 15, 23, 59))
        assert rng.start == day(2024, 5, 15)

    def test_aware_now_converted_to_utc(self):
        tz = timezone(timedelta(hours=-5))
        rng = resolve_date_preset("today", datetime(2024, 5, 15, 22, 0, tzinfo=tz))
        assert rng.start == day(2024, 5, 16)

    def test_custom_has_no_range(self):
        assert resolve_date_preset("custom", NOW) is None

    def test_unknown_preset(self):
        assert resolve_date_preset("someday", NOW) is None


class TestIsDatePreset:
    def test_known(self):
        assert is_date_preset("last7days")

    def test_unknown(self):
        assert not is_date_preset("2024-01-01")

    def test_non_string(self):
        assert not is_date_preset(7)


class TestCondition:
    def test_half_open_condition(self):
        frag = build_date_preset_condition(Fragment.text("created_at"), "today", NOW)
        stmt = frag.render(PostgresDialect())
        assert stmt.sql == "created_at >= $1 AND created_at < $2"
        assert stmt.parameters == [day(2024, 5, 15), day(2024, 5, 16)]
        assert frag.compound == "AND"

    def test_custom_builds_nothing(self):
        assert build_date_preset_condition(Fragment.text("created_at"), "custom", NOW) is None
