"""Symbolic date ranges resolved to half-open UTC intervals."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from pytablecraft._sql import Fragment, sql


class DatePreset(enum.StrEnum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_7_DAYS = "last7days"
    LAST_30_DAYS = "last30days"
    LAST_90_DAYS = "last90days"
    THIS_WEEK = "thisWeek"
    LAST_WEEK = "lastWeek"
    THIS_MONTH = "thisMonth"
    LAST_MONTH = "lastMonth"
    THIS_QUARTER = "thisQuarter"
    LAST_QUARTER = "lastQuarter"
    THIS_YEAR = "thisYear"
    LAST_YEAR = "lastYear"
    CUSTOM = "custom"


_PRESET_NAMES = frozenset(p.value for p in DatePreset)


@dataclass(frozen=True)
class DateRange:
    """``[start, end)`` in UTC."""

    start: datetime
    end: datetime


def is_date_preset(value: Any) -> bool:
    return isinstance(value, str) and value in _PRESET_NAMES


def _start_of_day(d: datetime) -> datetime:
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)


def _start_of_week(d: datetime) -> datetime:
    # Monday start
    return _start_of_day(d) - timedelta(days=d.weekday())


def _start_of_month(d: datetime) -> datetime:
    return datetime(d.year, d.month, 1, tzinfo=timezone.utc)


def _start_of_quarter(d: datetime) -> datetime:
    month = (d.month - 1) // 3 * 3 + 1
    return datetime(d.year, month, 1, tzinfo=timezone.utc)


def _shift_months(d: datetime, months: int) -> datetime:
    # Only called with first-of-month values, so the day never overflows.
    index = d.year * 12 + (d.month - 1) + months
    return d.replace(year=index // 12, month=index % 12 + 1)


def resolve_date_preset(
    preset: DatePreset | str, now: datetime | None = None
) -> DateRange | None:
    """Resolve ``preset`` relative to ``now`` (defaults to the current UTC time).

    Ranges ending "now" end at the start of tomorrow so today is included.
    ``custom`` has no range.
    """
    if not is_date_preset(preset):
        return None
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)

    today = _start_of_day(now)
    tomorrow = today + timedelta(days=1)

    match DatePreset(preset):
        case DatePreset.TODAY:
            return DateRange(today, tomorrow)
        case DatePreset.YESTERDAY:
            return DateRange(today - timedelta(days=1), today)
        case DatePreset.LAST_7_DAYS:
            return DateRange(today - timedelta(days=7), tomorrow)
        case DatePreset.LAST_30_DAYS:
            return DateRange(today - timedelta(days=30), tomorrow)
        case DatePreset.LAST_90_DAYS:
            return DateRange(today - timedelta(days=90), tomorrow)
        case DatePreset.THIS_WEEK:
            return DateRange(_start_of_week(today), tomorrow)
        case DatePreset.LAST_WEEK:
            week = _start_of_week(today)
            return DateRange(week - timedelta(days=7), week)
        case DatePreset.THIS_MONTH:
            return DateRange(_start_of_month(today), tomorrow)
        case DatePreset.LAST_MONTH:
            month = _start_of_month(today)
            return DateRange(_shift_months(month, -1), month)
        case DatePreset.THIS_QUARTER:
            return DateRange(_start_of_quarter(today), tomorrow)
        case DatePreset.LAST_QUARTER:
            quarter = _start_of_quarter(today)
            return DateRange(_shift_months(quarter, -3), quarter)
        case DatePreset.THIS_YEAR:
            return DateRange(datetime(today.year, 1, 1, tzinfo=timezone.utc), tomorrow)
        case DatePreset.LAST_YEAR:
            return DateRange(
                datetime(today.year - 1, 1, 1, tzinfo=timezone.utc),
                datetime(today.year, 1, 1, tzinfo=timezone.utc),
            )
        case DatePreset.CUSTOM:
            return None
    return None


def build_date_preset_condition(
    target: Fragment, preset: DatePreset | str, now: datetime | None = None
) -> Fragment | None:
    """Build ``target >= start AND target < end`` for a preset."""
    rng = resolve_date_preset(preset, now)
    if rng is None:
        return None
    result = sql(
        target, " >= ", Fragment.param(rng.start),
        " AND ", target, " < ", Fragment.param(rng.end),
    )
    result.compound = "AND"
    return result
