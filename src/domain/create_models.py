"""Pydantic models for creating task records."""

from datetime import date

from pydantic import BaseModel, Field, field_validator, model_validator

from src.core import date_window
from src.core.config import settings
from src.domain.task import TaskPriority, TaskStatus


def normalize_title(v: str) -> str:
    """Strip a title and enforce the non-empty and length bounds."""
    title = v.strip()
    if not title:
        msg = "Title is required"
        raise ValueError(msg)
    if len(title) > settings.title_max_length:
        msg = f"Title must be at most {settings.title_max_length} characters"
        raise ValueError(msg)
    return title


def normalize_description(v: str | None) -> str | None:
    """Treat blank descriptions as absent and enforce the length bound."""
    if v is None or not v.strip():
        return None
    if len(v) > settings.description_max_length:
        msg = f"Description must be at most {settings.description_max_length} characters"
        raise ValueError(msg)
    return v


def normalize_time(v: str | None) -> str | None:
    """Canonicalize a time of day to HH:MM, treating blanks as absent."""
    if v is None or v == "":
        return None
    return date_window.format_time(date_window.parse_time(v))


def normalize_date(v: str | date | None) -> str | None:
    """Canonicalize a calendar date to YYYY-MM-DD, treating blanks as absent."""
    if v is None or v == "":
        return None
    if isinstance(v, date):
        return date_window.format_date(v)
    return date_window.format_date(date_window.parse_date(v))


def check_time_order(start_time: str | None, end_time: str | None) -> None:
    """Require end_time to be strictly later than start_time when both are set."""
    if start_time is not None and end_time is not None and end_time <= start_time:
        msg = "End time must be after start time"
        raise ValueError(msg)


class TaskFields(BaseModel):
    """Content and scheduling fields shared by plain tasks and series occurrences."""

    title: str = Field(..., description="Task title")
    description: str | None = Field(default=None, description="Detailed task description")
    start_time: str | None = Field(default=None, description="Start time of day (HH:MM)")
    end_time: str | None = Field(default=None, description="End time of day (HH:MM)")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return normalize_title(v)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str | None) -> str | None:
        return normalize_description(v)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def validate_time(cls, v: str | None) -> str | None:
        return normalize_time(v)

    @model_validator(mode="after")
    def validate_time_order(self) -> "TaskFields":
        check_time_order(self.start_time, self.end_time)
        return self


class TaskCreate(TaskFields):
    """Pydantic model for creating a plain (non-recurring) task."""

    due_date: str = Field(..., description="Due date (YYYY-MM-DD)")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Initial progress state")

    @field_validator("due_date", mode="before")
    @classmethod
    def validate_due_date(cls, v: str | date | None) -> str:
        due_date = normalize_date(v)
        if due_date is None:
            msg = "Due date is required for non-recurring tasks"
            raise ValueError(msg)
        return due_date


class SeriesCreate(TaskFields):
    """Pydantic model for creating a recurring task series."""

    recurrence_days: list[str] | str = Field(
        ..., description="Weekdays the task repeats on, e.g. ['mon', 'wed'] or 'mon, wed'"
    )
    recurrence_end_date: str | None = Field(default=None, description="Last date of the series (inclusive)")
    origin_date: str | None = Field(default=None, description="First date the series may fall on")

    @field_validator("recurrence_end_date", "origin_date", mode="before")
    @classmethod
    def validate_dates(cls, v: str | date | None) -> str | None:
        return normalize_date(v)

    def content(self) -> TaskFields:
        """Return only the content fields copied onto every occurrence."""
        return TaskFields.model_validate(self.model_dump(include=set(TaskFields.model_fields)))
