"""Series service: recurring tasks materialized as one record per occurrence.

A series is a template record holding the weekly rule (``due_date`` is null,
so it is never listed) plus one dated occurrence record per matching day in
the generation window. Every record of a series shares its ``series_id``.
"""

import logging
import uuid
from datetime import date, timedelta
from typing import Any

from pydantic import BaseModel, Field

from src.core import db_client
from src.core.config import settings
from src.core.date_window import format_date, parse_date
from src.core.db_client import sanitize_param
from src.core.errors import NotFoundError, PersistenceError, ValidationError
from src.core.logging import log_with_owner_context, span
from src.core.recurrence import (
    RecurrenceRule,
    describe_recurrence,
    expand,
    generation_window,
    parse_recurrence_days,
    sort_recurrence_days,
)
from src.domain.create_models import SeriesCreate, TaskFields
from src.domain.task import Task, TaskKind, TaskStatus
from src.services import task_service
from src.services.task_service import COLLECTION, owner_filter, parse_input


logger = logging.getLogger(__name__)


class SeriesCreated(BaseModel):
    """Result of creating a recurring task series."""

    series_id: str = Field(..., description="ID shared by the template and every occurrence")
    template_id: str = Field(..., description="ID of the rule-holding template record")
    occurrence_ids: list[str] = Field(default_factory=list, description="IDs of the created occurrences")
    occurrence_count: int = Field(..., description="Number of occurrences created")
    description: str = Field(..., description="Human-readable recurrence, e.g. 'every Mon, Wed'")


class SeriesView(BaseModel):
    """A series template together with its occurrences in date order."""

    template: Task
    occurrences: list[Task]


def _series_filter(*, series_id: str, owner_id: str) -> str:
    return f'{owner_filter(owner_id)} && series_id = "{sanitize_param(series_id)}"'


def rule_from_template(template: Task) -> RecurrenceRule:
    """Rebuild the recurrence rule a template was created with."""
    return RecurrenceRule(
        weekdays=frozenset(template.recurrence_days),
        origin_date=parse_date(template.recurrence_start_date or template.created[:10]),
        end_date=parse_date(template.recurrence_end_date) if template.recurrence_end_date else None,
    )


def _rule_fields(*, rule: RecurrenceRule, series_id: str) -> dict[str, Any]:
    return {
        "is_recurring": True,
        "recurrence_days": [day.value for day in sort_recurrence_days(rule.weekdays)],
        "recurrence_start_date": format_date(rule.origin_date),
        "recurrence_end_date": format_date(rule.end_date) if rule.end_date else None,
        "series_id": series_id,
    }


def _occurrence_records(
    *,
    owner_id: str,
    content: TaskFields,
    rule: RecurrenceRule,
    series_id: str,
    dates: list[date],
) -> list[dict[str, Any]]:
    shared = {
        "owner_id": owner_id,
        **content.model_dump(),
        **_rule_fields(rule=rule, series_id=series_id),
        "status": TaskStatus.TODO,
        "completed_at": None,
    }
    return [{**shared, "due_date": format_date(day)} for day in dates]


async def _get_template(*, series_id: str, owner_id: str) -> Task | None:
    record = await db_client.get_first_record(
        collection=COLLECTION,
        filter_query=f"{_series_filter(series_id=series_id, owner_id=owner_id)} && due_date = null",
    )
    return Task.model_validate(record) if record else None


async def create_series(
    *,
    owner_id: str,
    series: SeriesCreate | dict[str, Any],
    today: date | None = None,
    horizon_days: int | None = None,
) -> SeriesCreated:
    """Create a recurring task: one template plus one occurrence per matching day.

    Occurrences are materialized for ``[today, min(end date, today + horizon)]``.
    A rule with no matching day in that window still creates the template.

    Args:
        owner_id: Owning user ID
        series: Content fields plus ``recurrence_days``, optional ``recurrence_end_date``
            and optional ``origin_date`` (defaults to today)
        today: Date the window starts at (defaults to the current date)
        horizon_days: Window length override (defaults to settings.recurrence_horizon_days)

    Returns:
        SeriesCreated with the series ID and the created occurrence IDs

    Raises:
        ValidationError: If the title is empty or no weekday is selected
        PersistenceError: If the store rejects a write; no occurrence is left behind
    """
    with span("series_service.create_series"):
        request = parse_input(SeriesCreate, series)
        weekdays = parse_recurrence_days(request.recurrence_days)
        if not weekdays:
            raise ValidationError("Recurring tasks need at least one weekday")

        today = today or date.today()
        horizon = settings.recurrence_horizon_days if horizon_days is None else horizon_days
        rule = RecurrenceRule(
            weekdays=weekdays,
            origin_date=parse_date(request.origin_date) if request.origin_date else today,
            end_date=parse_date(request.recurrence_end_date) if request.recurrence_end_date else None,
        )
        content = request.content()
        series_id = str(uuid.uuid4())

        template = await db_client.create_record(
            collection=COLLECTION,
            data={
                "owner_id": owner_id,
                **content.model_dump(),
                **_rule_fields(rule=rule, series_id=series_id),
                "due_date": None,
                "status": TaskStatus.TODO,
            },
        )

        window_start, window_end = generation_window(today=today, end_date=rule.end_date, horizon_days=horizon)
        dates = expand(rule, window_start, window_end)

        try:
            occurrences = await db_client.create_records(
                collection=COLLECTION,
                records=_occurrence_records(
                    owner_id=owner_id, content=content, rule=rule, series_id=series_id, dates=dates
                ),
            )
            await db_client.update_record(
                collection=COLLECTION,
                record_id=template["id"],
                data={"generated_through": format_date(window_end)},
            )
        except PersistenceError:
            await _discard_template(template_id=template["id"], series_id=series_id, owner_id=owner_id)
            raise

        log_with_owner_context(
            logger,
            "info",
            "series_created",
            owner_id=owner_id,
            series_id=series_id,
            occurrence_count=len(occurrences),
            window_start=format_date(window_start),
            window_end=format_date(window_end),
        )

        return SeriesCreated(
            series_id=series_id,
            template_id=template["id"],
            occurrence_ids=[record["id"] for record in occurrences],
            occurrence_count=len(occurrences),
            description=describe_recurrence(rule),
        )


async def _discard_template(*, template_id: str, series_id: str, owner_id: str) -> None:
    """Undo the template write after the occurrence write failed.

    If this also fails, the template is left without occurrences. That state is
    invisible to readers and extend_series() fills it in later.
    """
    try:
        await db_client.delete_records(
            collection=COLLECTION,
            filter_query=_series_filter(series_id=series_id, owner_id=owner_id),
        )
    except PersistenceError as e:
        logger.error(
            "series_template_orphaned",
            extra={"owner_id": owner_id, "template_id": template_id, "series_id": series_id, "error": str(e)},
        )


async def complete_occurrence(*, task_id: str, owner_id: str) -> Task:
    """Mark exactly one occurrence as done. Its siblings are not touched.

    Raises:
        ValidationError: If the record is a series template
        NotFoundError: If the task does not exist or belongs to someone else
    """
    with span("series_service.complete_occurrence"):
        return await task_service.set_task_status(task_id=task_id, owner_id=owner_id, status=TaskStatus.DONE)


async def complete_series(*, series_id: str, owner_id: str) -> int:
    """Mark every open occurrence of a series as done.

    Already-done occurrences keep their original completion time, so calling
    this twice is the same as calling it once. A series the caller does not
    own is left alone and reported as 0.

    Returns:
        Number of occurrences that changed to done
    """
    with span("series_service.complete_series"):
        count = await db_client.update_records(
            collection=COLLECTION,
            filter_query=(
                f'{_series_filter(series_id=series_id, owner_id=owner_id)} && due_date != null && status != "done"'
            ),
            data=task_service.status_patch(TaskStatus.DONE),
        )

        log_with_owner_context(logger, "info", "series_completed", owner_id=owner_id, series_id=series_id, count=count)
        return count


async def delete_occurrence(*, task_id: str, owner_id: str) -> str:
    """Delete exactly one occurrence and return its ID. Its siblings are not touched.

    Raises:
        ValidationError: If the record is a series template
        NotFoundError: If the task does not exist or belongs to someone else
    """
    with span("series_service.delete_occurrence"):
        return await task_service.delete_task(task_id=task_id, owner_id=owner_id)


async def delete_series(*, series_id: str, owner_id: str) -> int:
    """Delete every record of a series, template included.

    A series the caller does not own is left alone and reported as 0.

    Returns:
        Number of records removed
    """
    with span("series_service.delete_series"):
        count = await db_client.delete_records(
            collection=COLLECTION,
            filter_query=_series_filter(series_id=series_id, owner_id=owner_id),
        )

        log_with_owner_context(logger, "info", "series_deleted", owner_id=owner_id, series_id=series_id, count=count)
        return count


async def extend_series(
    *,
    series_id: str,
    owner_id: str,
    window_end: date | None = None,
    today: date | None = None,
) -> int:
    """Materialize occurrences past the series' current window.

    Generates from the day after the last materialized date (or ``today`` if
    later) up to ``window_end``, capped at ``today + horizon`` and at the rule's
    end date. Dates that already have an occurrence are skipped, so a template
    left without occurrences by a failed create is repaired by this call.
    Occurrences deleted one by one inside the old window stay deleted.

    Returns:
        Number of occurrences created (0 for a series the caller does not own)
    """
    with span("series_service.extend_series"):
        template = await _get_template(series_id=series_id, owner_id=owner_id)
        if template is None:
            return 0

        today = today or date.today()
        rule = rule_from_template(template)

        _, horizon_end = generation_window(
            today=today, end_date=rule.end_date, horizon_days=settings.recurrence_horizon_days
        )
        end = min(window_end, horizon_end) if window_end else horizon_end

        start = today
        if template.generated_through:
            start = max(start, parse_date(template.generated_through) + timedelta(days=1))

        existing = await task_service.list_all_records(
            filter_query=f"{_series_filter(series_id=series_id, owner_id=owner_id)} && due_date != null",
        )
        existing_dates = {record["due_date"] for record in existing}
        dates = [day for day in expand(rule, start, end) if format_date(day) not in existing_dates]

        content = TaskFields.model_validate(template.model_dump(include=set(TaskFields.model_fields)))
        created = await db_client.create_records(
            collection=COLLECTION,
            records=_occurrence_records(
                owner_id=owner_id, content=content, rule=rule, series_id=series_id, dates=dates
            ),
        )

        if start <= end and (template.generated_through is None or format_date(end) > template.generated_through):
            await db_client.update_record(
                collection=COLLECTION,
                record_id=template.id,
                data={"generated_through": format_date(end)},
            )

        log_with_owner_context(
            logger, "info", "series_extended", owner_id=owner_id, series_id=series_id, count=len(created)
        )
        return len(created)


async def get_series(*, series_id: str, owner_id: str) -> SeriesView:
    """Return a series' template and its occurrences in date order.

    Raises:
        NotFoundError: If the caller has no series with this ID
    """
    with span("series_service.get_series"):
        records = await task_service.list_all_records(
            filter_query=_series_filter(series_id=series_id, owner_id=owner_id),
        )
        tasks = [Task.model_validate(record) for record in records]

        template = next((task for task in tasks if task.kind is TaskKind.TEMPLATE), None)
        if template is None:
            raise NotFoundError(f"Series not found: {series_id}")

        occurrences = sorted(
            (task for task in tasks if task.kind is TaskKind.OCCURRENCE),
            key=lambda task: task.due_date or "",
        )
        return SeriesView(template=template, occurrences=occurrences)
