"""Weekly progress calculator and status derivation.

Everything here is pure: no database, no request state, no clock reads.
Callers pass ``today`` explicitly.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date

from otj_portal.errors import InvalidInput
from otj_portal.weeks import week_bounds

PENDING = "pending"
COMPLETE = "complete"
INCOMPLETE = "incomplete"

STATUSES = (PENDING, COMPLETE, INCOMPLETE)
# A tutor can only settle a week one way or the other
OVERRIDE_STATUSES = (COMPLETE, INCOMPLETE)


@dataclass(frozen=True)
class WeeklyProgress:
    total_hours: float
    minimum_required_hours: float
    percentage: float
    met: bool

    def as_dict(self) -> dict:
        return {
            "percentage": self.percentage,
            "met": self.met,
            "total_hours": self.total_hours,
            "minimum_required_hours": self.minimum_required_hours,
        }


def validate_hours(value, field: str = "total_hours", maximum: float | None = None) -> float:
    """Coerce *value* to a non-negative finite float or raise ``InvalidInput``.

    Accepts numbers or numeric strings (form/JSON input).  When *maximum* is
    given, values above it are rejected too.
    """
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(field, f"{field} must be a number (e.g. 2.5).") from None
    if not math.isfinite(hours):
        raise InvalidInput(field, f"{field} must be a finite number.")
    if hours < 0:
        raise InvalidInput(field, f"{field} cannot be negative.")
    if maximum is not None and hours > maximum:
        raise InvalidInput(field, f"{field} exceeds the maximum of {maximum:g} hours for a week.")
    return hours


def calculate_progress(total_hours: float, minimum_required_hours: float) -> WeeklyProgress:
    """Return percentage-complete (capped at 100) and whether the minimum is met.

    A zero minimum counts as 100% met.  A negative minimum is a configuration
    error and is reported rather than silently clamped.
    """
    if total_hours < 0:
        raise InvalidInput("total_hours", "total_hours cannot be negative.")
    if minimum_required_hours < 0:
        raise InvalidInput(
            "minimum_required_hours",
            "minimum_required_hours must not be negative - check the standard's configuration.",
        )

    met = total_hours >= minimum_required_hours
    if minimum_required_hours == 0:
        percentage = 100.0
    else:
        percentage = min(100.0, round(total_hours / minimum_required_hours * 100, 2))
        # 100 only once the minimum is actually met
        if not met:
            percentage = min(percentage, 99.99)

    return WeeklyProgress(
        total_hours=total_hours,
        minimum_required_hours=minimum_required_hours,
        percentage=percentage,
        met=met,
    )


def derive_status(total_hours: float, minimum_required_hours: float, week_end: date, today: date) -> str:
    """Computed status of a week.

    ``pending`` until the week's last day has passed, then ``complete`` or
    ``incomplete`` depending on whether the minimum was met.  Logging more
    hours retroactively simply changes the answer on the next call.
    """
    if today <= week_end:
        return PENDING
    met = calculate_progress(total_hours, minimum_required_hours).met
    return COMPLETE if met else INCOMPLETE


def effective_status(computed: str, override: str | None) -> str:
    """A tutor override wins over the computed status."""
    return override if override in OVERRIDE_STATUSES else computed


def rollup_weekly_hours(entries, week_starts: list[date]) -> dict[date, float]:
    """Sum ``(entry_date, hours)`` pairs into the weeks starting at *week_starts*.

    Entries outside every requested week are ignored; weeks with no entries
    get ``0.0``.
    """
    wanted = set(week_starts)
    totals: dict[date, float] = defaultdict(float)
    for entry_date, hours in entries:
        start, _ = week_bounds(entry_date)
        if start in wanted:
            totals[start] += hours
    return {start: round(totals.get(start, 0.0), 2) for start in week_starts}
