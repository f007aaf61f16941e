"""Weekly recurrence rules: parsing, expansion into dates, and human-readable text."""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from src.core.date_window import enumerate_days, format_date, weekday_of
from src.core.errors import ValidationError
from src.domain.task import RECURRENCE_DAY_ORDER, RecurrenceDay


_DAY_NAMES: dict[str, RecurrenceDay] = {
    "sunday": RecurrenceDay.SUN,
    "monday": RecurrenceDay.MON,
    "tuesday": RecurrenceDay.TUE,
    "wednesday": RecurrenceDay.WED,
    "thursday": RecurrenceDay.THU,
    "friday": RecurrenceDay.FRI,
    "saturday": RecurrenceDay.SAT,
}

_WEEKDAYS = frozenset(
    {RecurrenceDay.MON, RecurrenceDay.TUE, RecurrenceDay.WED, RecurrenceDay.THU, RecurrenceDay.FRI}
)
_WEEKEND = frozenset({RecurrenceDay.SAT, RecurrenceDay.SUN})


@dataclass(frozen=True)
class RecurrenceRule:
    """A weekly repeat rule: a set of weekdays from an origin date, optionally bounded."""

    weekdays: frozenset[RecurrenceDay]
    origin_date: date
    end_date: date | None = None


def expand(rule: RecurrenceRule, window_start: date, window_end: date) -> list[date]:
    """Return every date in the window that the rule falls on, in ascending order.

    The effective range is ``[max(origin, window_start), min(end_date, window_end)]``;
    an inverted range yields an empty list.
    """
    if not rule.weekdays:
        return []

    effective_start = max(rule.origin_date, window_start)
    effective_end = min(rule.end_date, window_end) if rule.end_date else window_end

    if effective_start > effective_end:
        return []

    return [day for day in enumerate_days(effective_start, effective_end) if weekday_of(day) in rule.weekdays]


def generation_window(*, today: date, end_date: date | None, horizon_days: int) -> tuple[date, date]:
    """Return the materialization window ``[today, min(end_date, today + horizon)]``.

    The horizon caps how many rows one call can create; later dates need a
    re-invocation with a later ``today``.
    """
    horizon_end = today + timedelta(days=horizon_days)
    window_end = min(end_date, horizon_end) if end_date else horizon_end
    return today, window_end


def parse_recurrence_days(values: str | Iterable[str]) -> frozenset[RecurrenceDay]:
    """Parse weekday flags from user input.

    Accepts three-letter codes (``"mon"``), full names (``"Monday"``) or a
    comma/space separated string (``"mon, wed fri"``).

    Raises:
        ValidationError: If a value is not a weekday
    """
    raw_items = re.split(r"[,\s]+", values) if isinstance(values, str) else list(values)

    days = set()
    for raw in raw_items:
        item = str(raw).strip().lower().rstrip(".")
        if not item:
            continue
        # Any prefix of a day name of at least three letters ("tue", "tues", "tuesday")
        matches = [day for name, day in _DAY_NAMES.items() if len(item) >= 3 and name.startswith(item)]
        if len(matches) != 1:
            msg = f"Invalid recurrence day: {raw!r}. Use sun, mon, tue, wed, thu, fri or sat"
            raise ValidationError(msg)
        days.add(matches[0])

    return frozenset(days)


def sort_recurrence_days(days: Iterable[RecurrenceDay | str]) -> list[RecurrenceDay]:
    """Return weekday flags in Sunday-first order without duplicates."""
    wanted = {RecurrenceDay(day) for day in days}
    return [day for day in RECURRENCE_DAY_ORDER if day in wanted]


def format_recurrence_days(days: Iterable[RecurrenceDay | str]) -> str:
    """Format weekday flags for display, e.g. ``['fri', 'mon']`` -> ``"Mon, Fri"``."""
    return ", ".join(day.value.capitalize() for day in sort_recurrence_days(days))


def describe_recurrence(rule: RecurrenceRule) -> str:
    """Convert a rule to human-readable text.

    Examples: ``"every day"``, ``"every weekday"``, ``"every Mon, Wed until 2026-03-01"``.
    """
    weekdays = frozenset(rule.weekdays)

    if len(weekdays) == len(RECURRENCE_DAY_ORDER):
        text = "every day"
    elif weekdays == _WEEKDAYS:
        text = "every weekday"
    elif weekdays == _WEEKEND:
        text = "every weekend"
    elif weekdays:
        text = f"every {format_recurrence_days(weekdays)}"
    else:
        return "never"

    if rule.end_date:
        text += f" until {format_date(rule.end_date)}"
    return text
