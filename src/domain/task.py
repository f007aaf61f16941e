"""Task domain models and enums."""

import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class TaskStatus(StrEnum):
    """Task progress state."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(StrEnum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecurrenceDay(StrEnum):
    """Weekday flag of a weekly recurrence rule."""

    SUN = "sun"
    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"


# Sunday-first display and storage order
RECURRENCE_DAY_ORDER: tuple[RecurrenceDay, ...] = tuple(RecurrenceDay)


class TaskKind(StrEnum):
    """What a stored task record represents."""

    PLAIN = "plain"  # Ordinary one-off task
    TEMPLATE = "template"  # Rule holder of a series, never shown as a due task
    OCCURRENCE = "occurrence"  # One dated row of a series


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from database")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    owner_id: str = Field(..., description="Owning user ID")
    title: str = Field(..., description="Task title")
    description: str | None = Field(default=None, description="Detailed task description")
    due_date: str | None = Field(default=None, description="Due date (YYYY-MM-DD), null on series templates")
    start_time: str | None = Field(default=None, description="Start time of day (HH:MM)")
    end_time: str | None = Field(default=None, description="End time of day (HH:MM)")
    is_recurring: bool = Field(default=False, description="Whether the task belongs to a weekly series")
    recurrence_days: list[RecurrenceDay] = Field(default_factory=list, description="Weekdays the series repeats on")
    recurrence_start_date: str | None = Field(default=None, description="First date the series may fall on")
    recurrence_end_date: str | None = Field(default=None, description="Last date the series applies (inclusive)")
    generated_through: str | None = Field(
        default=None,
        description="Template only: last date occurrences have been materialized for",
    )
    series_id: str | None = Field(default=None, description="ID shared by every record of one series")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Current progress state")
    completed_at: str | None = Field(default=None, description="Completion timestamp, set iff status is done")

    @field_validator("recurrence_days", mode="before")
    @classmethod
    def decode_recurrence_days(cls, v: Any) -> Any:
        """Accept the JSON text the store keeps for weekday lists."""
        if v is None or v == "":
            return []
        if isinstance(v, str):
            return json.loads(v)
        return v

    @property
    def kind(self) -> TaskKind:
        """Resolve whether this record is a plain task, a series template or an occurrence."""
        if self.series_id is None:
            return TaskKind.PLAIN
        if self.due_date is None:
            return TaskKind.TEMPLATE
        return TaskKind.OCCURRENCE

    @property
    def is_template(self) -> bool:
        return self.kind is TaskKind.TEMPLATE

    @property
    def is_timed(self) -> bool:
        return self.start_time is not None
