"""Domain models and DTOs."""

from src.domain.task import RecurrenceDay, Task, TaskKind, TaskPriority, TaskStatus
from src.domain.create_models import SeriesCreate, TaskCreate, TaskFields
from src.domain.update_models import TaskUpdate


__all__ = [
    "RecurrenceDay",
    "SeriesCreate",
    "Task",
    "TaskCreate",
    "TaskFields",
    "TaskKind",
    "TaskPriority",
    "TaskStatus",
    "TaskUpdate",
]
