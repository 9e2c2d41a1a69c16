"""Tests for the week-boundary helpers."""

from datetime import date, datetime, timedelta, timezone

import pytest

from otj_portal.errors import InvalidInput
from otj_portal.weeks import SUNDAY, format_week_range, parse_week_date, recent_week_starts, week_bounds


def test_wednesday_resolves_to_monday_sunday():
    """2024-06-12 (Wednesday) sits in the week 2024-06-10 .. 2024-06-16."""
    assert week_bounds(date(2024, 6, 12)) == (date(2024, 6, 10), date(2024, 6, 16))


def test_monday_and_sunday_are_their_own_boundaries():
    assert week_bounds(date(2024, 6, 10))[0] == date(2024, 6, 10)
    assert week_bounds(date(2024, 6, 16))[1] == date(2024, 6, 16)


def test_bounds_hold_for_every_day_of_a_year():
    """start <= d <= end, end = start + 6 and start is always a Monday."""
    day = date(2023, 12, 25)
    for _ in range(400):
        start, end = week_bounds(day)
        assert start <= day <= end
        assert end - start == timedelta(days=6)
        assert start.weekday() == 0
        assert week_bounds(day) == (start, end)
        day += timedelta(days=1)


def test_week_spanning_new_year():
    assert week_bounds(date(2025, 1, 1)) == (date(2024, 12, 30), date(2025, 1, 5))


def test_datetime_uses_wall_clock_date_regardless_of_offset():
    """A late-evening timestamp with a positive UTC offset stays in its own week."""
    sunday_night = datetime(2024, 6, 16, 23, 30, tzinfo=timezone(timedelta(hours=10)))
    assert week_bounds(sunday_night) == (date(2024, 6, 10), date(2024, 6, 16))
    naive_monday = datetime(2024, 6, 17, 0, 5)
    assert week_bounds(naive_monday)[0] == date(2024, 6, 17)


def test_configurable_week_start():
    start, end = week_bounds(date(2024, 6, 12), week_start=SUNDAY)
    assert start == date(2024, 6, 9)
    assert end == date(2024, 6, 15)


def test_week_bounds_rejects_non_dates():
    with pytest.raises(TypeError):
        week_bounds("2024-06-12")


def test_format_week_range():
    assert format_week_range(date(2024, 6, 10), date(2024, 6, 16)) == "10 Jun - 16 Jun 2024"
    assert format_week_range(date(2024, 12, 30), date(2025, 1, 5)) == "30 Dec - 05 Jan 2025"


def test_parse_week_date_accepts_iso():
    assert parse_week_date("2024-06-12") == date(2024, 6, 12)
    assert parse_week_date(date(2024, 6, 12)) == date(2024, 6, 12)


def test_parse_week_date_reports_field():
    with pytest.raises(InvalidInput) as exc_info:
        parse_week_date("12/06/2024", "start")
    assert exc_info.value.field == "start"


def test_recent_week_starts_oldest_first():
    starts = recent_week_starts(date(2024, 6, 12), 3)
    assert starts == [date(2024, 5, 27), date(2024, 6, 3), date(2024, 6, 10)]
