"""Calendar service: month grids and day timelines built from visible tasks."""

import calendar
import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from pydantic import BaseModel, Field

from src.core.date_window import enumerate_days, format_date, format_time_range
from src.core.errors import ValidationError
from src.core.logging import span
from src.core.timeline_layout import layout, timed_task_from
from src.domain.task import Task
from src.services.task_service import list_visible_tasks


logger = logging.getLogger(__name__)


class TimelineEntry(BaseModel):
    """A timed task placed on the day timeline."""

    task: Task
    column: int = Field(..., description="Zero-based column within the overlap group")
    column_count: int = Field(..., description="Number of columns in the overlap group")
    start_minute: int = Field(..., description="Start, in minutes since midnight")
    end_minute: int = Field(..., description="End, in minutes since midnight")
    left_percent: float
    width_percent: float
    time_label: str = Field(..., description="Display range, e.g. '9:00 AM – 10:00 AM'")


class DayView(BaseModel):
    """One day: untimed tasks in a list plus timed tasks laid out side by side."""

    date: str
    all_day: list[Task] = Field(default_factory=list)
    timed: list[TimelineEntry] = Field(default_factory=list)


def group_by_due_date(tasks: Iterable[Task]) -> dict[str, list[Task]]:
    """Bucket tasks by due date, keeping their order within each bucket."""
    buckets: dict[str, list[Task]] = defaultdict(list)
    for task in tasks:
        if task.due_date:
            buckets[task.due_date].append(task)
    return dict(buckets)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last day of a month.

    Raises:
        ValidationError: If the month is outside 1-12 or the year outside 1-9999
    """
    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        msg = f"Invalid month: {year}-{month}"
        raise ValidationError(msg)
    _, last_day = calendar.monthrange(year, month)
    return date(year, month, 1), date(year, month, last_day)


async def get_month_grid(*, owner_id: str, year: int, month: int) -> dict[str, list[Task]]:
    """Return every day of a month mapped to the owner's visible tasks due that day.

    Days without tasks map to an empty list.
    """
    with span("calendar_service.get_month_grid"):
        first, last = month_bounds(year, month)
        tasks = await list_visible_tasks(owner_id=owner_id, start=first, end=last)
        buckets = group_by_due_date(tasks)

        return {format_date(day): buckets.get(format_date(day), []) for day in enumerate_days(first, last)}


def build_day_view(day: date, tasks: Iterable[Task]) -> DayView:
    """Split one day's tasks into the all-day list and the laid-out timeline."""
    all_day: list[Task] = []
    timed: list[Task] = []
    for task in tasks:
        (timed if task.is_timed else all_day).append(task)

    by_id = {task.id: task for task in timed}
    entries = [
        TimelineEntry(
            task=by_id[placed.id],
            column=placed.column,
            column_count=placed.column_count,
            start_minute=placed.start_minute,
            end_minute=placed.end_minute,
            left_percent=placed.left_percent,
            width_percent=placed.width_percent,
            time_label=format_time_range(by_id[placed.id].start_time, by_id[placed.id].end_time),
        )
        for placed in layout([timed_task_from(task) for task in timed])
    ]

    return DayView(date=format_date(day), all_day=all_day, timed=entries)


async def get_day_view(*, owner_id: str, day: date) -> DayView:
    """Return the owner's visible tasks due on one day, with timed tasks laid out."""
    with span("calendar_service.get_day_view"):
        tasks = await list_visible_tasks(owner_id=owner_id, start=day, end=day)
        view = build_day_view(day, tasks)

        logger.debug(
            "Day view built",
            extra={"owner_id": owner_id, "date": view.date, "all_day": len(view.all_day), "timed": len(view.timed)},
        )
        return view
