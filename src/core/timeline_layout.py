"""Side-by-side layout of same-day timed tasks.

Tasks whose intervals chain together (each one starting before the latest end
seen so far in its group) share an overlap group. Every task in a group gets
its own column, so a renderer can draw ``width = 100 / column_count`` percent
at ``left = column * width`` without two tasks colliding.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from src.core.config import settings
from src.core.date_window import time_to_minutes
from src.domain.task import Task


@dataclass(frozen=True)
class TimedTask:
    """Layout input: a task's interval in minutes since midnight."""

    id: str
    start_minute: int | None
    end_minute: int | None = None


@dataclass(frozen=True)
class PlacedTask:
    """Layout output: a task's interval plus its column within its overlap group."""

    id: str
    column: int
    column_count: int
    start_minute: int
    end_minute: int

    @property
    def width_percent(self) -> float:
        return 100 / self.column_count

    @property
    def left_percent(self) -> float:
        return self.column * self.width_percent


def timed_task_from(task: Task) -> TimedTask:
    """Build a layout input from a stored task's HH:MM times."""
    return TimedTask(
        id=task.id,
        start_minute=time_to_minutes(task.start_time) if task.start_time else None,
        end_minute=time_to_minutes(task.end_time) if task.end_time else None,
    )


def _close_group(group: list[tuple[str, int, int]], placed: list[PlacedTask]) -> None:
    column_count = len(group)
    for column, (task_id, start, end) in enumerate(group):
        placed.append(
            PlacedTask(id=task_id, column=column, column_count=column_count, start_minute=start, end_minute=end)
        )


def layout(tasks: Sequence[TimedTask], *, default_duration: int | None = None) -> list[PlacedTask]:
    """Assign a column and column count to every timed task.

    Tasks without a start are skipped (they belong to the all-day list). A
    missing end defaults to ``start + default_duration`` minutes. Ties on start
    keep input order, so repeated layouts of the same input are identical.
    """
    duration = default_duration if default_duration is not None else settings.default_task_duration_minutes

    intervals = [
        (task.id, task.start_minute, task.end_minute if task.end_minute is not None else task.start_minute + duration)
        for task in tasks
        if task.start_minute is not None
    ]
    # sorted() is stable
    intervals = sorted(intervals, key=lambda interval: interval[1])

    placed: list[PlacedTask] = []
    group: list[tuple[str, int, int]] = []
    group_end = 0

    for interval in intervals:
        _, start, end = interval
        if group and start >= group_end:
            _close_group(group, placed)
            group = []
        if not group:
            group_end = end
        else:
            group_end = max(group_end, end)
        group.append(interval)

    if group:
        _close_group(group, placed)

    return placed
