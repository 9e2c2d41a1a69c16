"""Week-boundary helpers.

All arithmetic is done on calendar dates, never on timestamps, so a given
wall-clock date resolves to the same week whatever the caller's UTC offset.
"""

from datetime import date, datetime, timedelta

from otj_portal.errors import InvalidInput

MONDAY = 0
SUNDAY = 6


def _as_date(value) -> date:
    # datetime is a subclass of date, so test it first and drop the time part
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"expected a date, got {type(value).__name__}")


def week_bounds(reference, week_start: int = MONDAY) -> tuple[date, date]:
    """Return ``(start, end)`` of the week containing *reference*.

    *week_start* is a ``date.weekday()`` number (0 = Monday).  ``end`` is
    always ``start + 6 days``.

    >>> week_bounds(date(2024, 6, 12))
    (datetime.date(2024, 6, 10), datetime.date(2024, 6, 16))
    """
    day = _as_date(reference)
    start = day - timedelta(days=(day.weekday() - week_start) % 7)
    return start, start + timedelta(days=6)


def parse_week_date(value, field: str = "week_date") -> date:
    """Parse an ISO ``YYYY-MM-DD`` string (or pass a date through)."""
    if isinstance(value, (date, datetime)):
        return _as_date(value)
    try:
        return date.fromisoformat(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidInput(field, f"'{value}' is not a valid date - please use YYYY-MM-DD.") from None


def format_week_range(start: date, end: date) -> str:
    """Human-readable week label, e.g. ``"10 Jun - 16 Jun 2024"``."""
    return f"{start.strftime('%d %b')} - {end.strftime('%d %b %Y')}"


def recent_week_starts(today: date, weeks: int, week_start: int = MONDAY) -> list[date]:
    """Return the start date of each of the last *weeks* weeks, oldest first."""
    current, _ = week_bounds(today, week_start)
    return [current - timedelta(weeks=i) for i in range(weeks - 1, -1, -1)]
