"""Task service for plain task CRUD and the visible-task read surface."""

import logging
from datetime import date
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.core import db_client
from src.core.config import constants
from src.core.date_window import format_date
from src.core.db_client import now_iso, sanitize_param
from src.core.errors import NotFoundError, ValidationError, validation_error_from
from src.core.logging import span
from src.domain.create_models import TaskCreate, check_time_order
from src.domain.task import Task, TaskKind, TaskStatus
from src.domain.update_models import TaskUpdate


logger = logging.getLogger(__name__)

COLLECTION = "tasks"

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_input(model: type[ModelT], data: ModelT | dict[str, Any]) -> ModelT:
    """Validate raw input into a model, surfacing failures as a domain ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise validation_error_from(e) from e


def status_patch(status: TaskStatus) -> dict[str, Any]:
    """Build a patch that sets a status and keeps completed_at in step with it."""
    return {
        "status": status,
        "completed_at": now_iso() if status == TaskStatus.DONE else None,
    }


def owner_filter(owner_id: str) -> str:
    return f'owner_id = "{sanitize_param(owner_id)}"'


def visible_filter(*, owner_id: str, start: date | None = None, end: date | None = None) -> str:
    """Filter for the owner's user-visible tasks: everything except series templates."""
    filter_query = f"{owner_filter(owner_id)} && (series_id = null || due_date != null)"
    if start is not None:
        filter_query += f' && due_date >= "{format_date(start)}"'
    if end is not None:
        filter_query += f' && due_date <= "{format_date(end)}"'
    return filter_query


async def list_all_records(*, filter_query: str, sort: str = "") -> list[dict[str, Any]]:
    """Fetch every page of records matching a filter."""
    records: list[dict[str, Any]] = []
    page = 1
    while True:
        batch = await db_client.list_records(
            collection=COLLECTION,
            page=page,
            per_page=constants.DEFAULT_PER_PAGE_LIMIT,
            filter_query=filter_query,
            sort=sort,
        )
        records.extend(batch)
        if len(batch) < constants.DEFAULT_PER_PAGE_LIMIT:
            return records
        page += 1


async def get_task(*, task_id: str, owner_id: str) -> Task:
    """Get a task by ID with ownership validation.

    Raises:
        NotFoundError: If the task does not exist or belongs to someone else
    """
    with span("task_service.get_task"):
        record = await db_client.get_record(collection=COLLECTION, record_id=task_id)

        # A foreign task is reported exactly like a missing one
        if record.get("owner_id") != owner_id:
            raise NotFoundError(f"Task not found: {task_id}")

        return Task.model_validate(record)


async def create_task(*, owner_id: str, task: TaskCreate | dict[str, Any]) -> Task:
    """Create a plain (non-recurring) task.

    Args:
        owner_id: Owning user ID
        task: Task fields; ``due_date`` is required

    Returns:
        Created task

    Raises:
        ValidationError: If the fields are invalid
        PersistenceError: If the store rejects the write
    """
    with span("task_service.create_task"):
        fields = parse_input(TaskCreate, task)

        data: dict[str, Any] = {
            "owner_id": owner_id,
            **fields.model_dump(),
            "is_recurring": False,
            "recurrence_days": [],
            **status_patch(fields.status),
        }

        record = await db_client.create_record(collection=COLLECTION, data=data)
        logger.info("Created task '%s' for %s due %s", fields.title, owner_id, fields.due_date)

        return Task.model_validate(record)


async def update_task(*, task_id: str, owner_id: str, changes: TaskUpdate | dict[str, Any]) -> Task:
    """Apply a partial update to one task record.

    Updating an occurrence affects only that occurrence; its series siblings
    keep their own values.

    Raises:
        ValidationError: If the merged task would be invalid or the record is a series template
        NotFoundError: If the task does not exist or belongs to someone else
    """
    with span("task_service.update_task"):
        update = parse_input(TaskUpdate, changes)
        patch = update.changes()

        existing = await get_task(task_id=task_id, owner_id=owner_id)
        if existing.kind is TaskKind.TEMPLATE:
            raise ValidationError("Series templates cannot be edited directly")

        if "title" in patch and patch["title"] is None:
            raise ValidationError("Title is required")
        if "due_date" in patch and patch["due_date"] is None:
            raise ValidationError("Due date is required")
        if "priority" in patch and patch["priority"] is None:
            raise ValidationError("Priority cannot be empty")

        start_time = patch.get("start_time", existing.start_time)
        end_time = patch.get("end_time", existing.end_time)
        try:
            check_time_order(start_time, end_time)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if "status" in patch:
            status = patch.pop("status")
            if status is None:
                raise ValidationError("Status cannot be empty")
            if status != existing.status:
                patch.update(status_patch(status))

        if not patch:
            return existing

        record = await db_client.update_record(collection=COLLECTION, record_id=task_id, data=patch)
        logger.info("Updated task %s (%s)", task_id, ", ".join(sorted(patch)))

        return Task.model_validate(record)


async def set_task_status(*, task_id: str, owner_id: str, status: TaskStatus) -> Task:
    """Move one visible task to a status, stamping or clearing completed_at.

    Setting the status a task already has is a no-op.

    Raises:
        ValidationError: If the record is a series template
        NotFoundError: If the task does not exist or belongs to someone else
    """
    with span("task_service.set_task_status"):
        existing = await get_task(task_id=task_id, owner_id=owner_id)
        if existing.kind is TaskKind.TEMPLATE:
            raise ValidationError("Series templates cannot change status")

        if existing.status == status:
            return existing

        record = await db_client.update_record(collection=COLLECTION, record_id=task_id, data=status_patch(status))
        logger.info("Task %s moved from %s to %s", task_id, existing.status, status)

        return Task.model_validate(record)


async def toggle_task_status(*, task_id: str, owner_id: str) -> Task:
    """Flip a task between done and todo."""
    with span("task_service.toggle_task_status"):
        existing = await get_task(task_id=task_id, owner_id=owner_id)
        new_status = TaskStatus.TODO if existing.status == TaskStatus.DONE else TaskStatus.DONE
        return await set_task_status(task_id=task_id, owner_id=owner_id, status=new_status)


async def delete_task(*, task_id: str, owner_id: str) -> str:
    """Delete one visible task record and return its ID.

    Raises:
        ValidationError: If the record is a series template
        NotFoundError: If the task does not exist or belongs to someone else
    """
    with span("task_service.delete_task"):
        existing = await get_task(task_id=task_id, owner_id=owner_id)
        if existing.kind is TaskKind.TEMPLATE:
            raise ValidationError("Series templates are removed by deleting the whole series")

        await db_client.delete_record(collection=COLLECTION, record_id=task_id)
        logger.info("Deleted task %s for %s", task_id, owner_id)

        return task_id


async def list_visible_tasks(
    *,
    owner_id: str,
    start: date | None = None,
    end: date | None = None,
) -> list[Task]:
    """List the owner's tasks that a user can see, optionally within a due-date range.

    Plain tasks and series occurrences are returned; series templates never are.
    """
    with span("task_service.list_visible_tasks"):
        records = await list_all_records(filter_query=visible_filter(owner_id=owner_id, start=start, end=end))
        tasks = [Task.model_validate(record) for record in records]

        # Ascending due date, newest first within a day
        tasks.sort(key=lambda task: task.created, reverse=True)
        tasks.sort(key=lambda task: task.due_date or "")
        return tasks
