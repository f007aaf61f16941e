"""Calendar date and time-of-day helpers.

All values are local and naive. Dates travel as canonical ``YYYY-MM-DD``
strings and times of day as zero-padded 24-hour ``HH:MM`` strings.
"""

import re
from collections.abc import Iterator
from datetime import date, time, timedelta

from src.domain.task import RecurrenceDay


_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})(?::\d{2})?$")

# date.weekday() is Monday-first
_WEEKDAY_INDEX_TO_DAY = [
    RecurrenceDay.MON,
    RecurrenceDay.TUE,
    RecurrenceDay.WED,
    RecurrenceDay.THU,
    RecurrenceDay.FRI,
    RecurrenceDay.SAT,
    RecurrenceDay.SUN,
]


def parse_date(value: str) -> date:
    """Parse a canonical ``YYYY-MM-DD`` string.

    Raises:
        ValueError: If the string is not a canonical calendar date
    """
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        msg = f"Invalid date: {value!r}. Expected YYYY-MM-DD"
        raise ValueError(msg)
    return date.fromisoformat(value)


def format_date(value: date) -> str:
    """Format a date as zero-padded ``YYYY-MM-DD``."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def weekday_of(value: date) -> RecurrenceDay:
    """Return the recurrence flag for the weekday of a date."""
    return _WEEKDAY_INDEX_TO_DAY[value.weekday()]


class DayRange:
    """Inclusive, lazily enumerated range of calendar days.

    Iterating the same range twice yields the same dates.
    """

    __slots__ = ("end", "start")

    def __init__(self, start: date, end: date) -> None:
        self.start = start
        self.end = end

    def __iter__(self) -> Iterator[date]:
        cursor = self.start
        while cursor <= self.end:
            yield cursor
            cursor += timedelta(days=1)

    def __len__(self) -> int:
        return max((self.end - self.start).days + 1, 0)

    def __contains__(self, item: object) -> bool:
        return isinstance(item, date) and self.start <= item <= self.end

    def __repr__(self) -> str:
        return f"DayRange({format_date(self.start)}, {format_date(self.end)})"


def enumerate_days(start: date, end: date) -> DayRange:
    """Return every day from ``start`` to ``end`` inclusive (empty when start > end)."""
    return DayRange(start, end)


def parse_time(value: str) -> time:
    """Parse an ``HH:MM`` (or ``HH:MM:SS``) string into a time of day.

    Raises:
        ValueError: If the string is not a valid 24-hour time
    """
    match = _TIME_PATTERN.match(value) if isinstance(value, str) else None
    if not match:
        msg = f"Invalid time: {value!r}. Expected HH:MM"
        raise ValueError(msg)
    return time(int(match.group(1)), int(match.group(2)))


def format_time(value: time) -> str:
    """Format a time of day as zero-padded ``HH:MM``."""
    return f"{value.hour:02d}:{value.minute:02d}"


def time_to_minutes(value: str) -> int:
    """Convert an ``HH:MM`` string to minutes since midnight."""
    parsed = parse_time(value)
    return parsed.hour * 60 + parsed.minute


def format_time_12h(value: str | None) -> str:
    """Format a 24-hour time for display, e.g. ``"13:30"`` -> ``"1:30 PM"``."""
    if not value:
        return ""
    parsed = parse_time(value)
    period = "PM" if parsed.hour >= 12 else "AM"
    display_hour = parsed.hour % 12 or 12
    return f"{display_hour}:{parsed.minute:02d} {period}"


def format_time_range(start: str | None, end: str | None) -> str:
    """Format a start/end pair for display, e.g. ``"9:00 AM – 10:30 AM"``."""
    if not start:
        return ""
    if not end:
        return format_time_12h(start)
    return f"{format_time_12h(start)} – {format_time_12h(end)}"
