"""Update models for database operations."""

from datetime import date

from pydantic import BaseModel, field_validator

from src.domain.create_models import normalize_date, normalize_description, normalize_time, normalize_title
from src.domain.task import TaskPriority, TaskStatus


class TaskUpdate(BaseModel):
    """Partial update payload for a single task record.

    Only the fields present in ``model_fields_set`` are applied. Recurrence
    fields are not updatable per record: they belong to the series.
    """

    title: str | None = None
    description: str | None = None
    due_date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    priority: TaskPriority | None = None
    status: TaskStatus | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        return normalize_title(v) if v is not None else None

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str | None) -> str | None:
        return normalize_description(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def validate_due_date(cls, v: str | date | None) -> str | None:
        return normalize_date(v)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def validate_time(cls, v: str | None) -> str | None:
        return normalize_time(v)

    def changes(self) -> dict[str, object]:
        """Return the explicitly provided fields as a store patch."""
        return self.model_dump(include=self.model_fields_set)
