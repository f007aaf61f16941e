"""HTTP interface for tasks, recurring series and calendar views."""

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Body, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from src.core.config import constants
from src.core.date_window import parse_date
from src.core.errors import AllMeError, ValidationError, classify_error_with_response, http_status_for
from src.domain.task import Task
from src.services import calendar_service, series_service, task_service
from src.services.calendar_service import DayView
from src.services.series_service import SeriesCreated, SeriesView


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _parse_date_param(name: str, value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        raise ValidationError(f"{name}: {e}") from e


async def allme_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render engine errors as ErrorResponse bodies with a matching status code."""
    status_code = http_status_for(exc)
    response = classify_error_with_response(exc)

    log_method = logger.error if status_code >= constants.HTTP_SERVER_ERROR else logger.info
    log_method(
        "request_failed",
        extra={"path": request.url.path, "status_code": status_code, "code": response.code, "error": str(exc)},
    )
    if isinstance(exc, ValidationError):
        # Validation messages are safe to echo back
        response.message = str(exc)

    return JSONResponse(content=response.model_dump(mode="json"), status_code=status_code)


def register_error_handlers(app: FastAPI) -> None:
    """Attach the engine error handler to an application."""
    app.add_exception_handler(AllMeError, allme_error_handler)


OwnerHeader = Header(..., alias=constants.OWNER_HEADER)


@router.get("")
async def list_tasks(
    start: str | None = None,
    end: str | None = None,
    owner_id: str = OwnerHeader,
) -> list[Task]:
    """List visible tasks, optionally limited to a due-date range."""
    return await task_service.list_visible_tasks(
        owner_id=owner_id,
        start=_parse_date_param("start", start),
        end=_parse_date_param("end", end),
    )


@router.post("", status_code=constants.HTTP_CREATED)
async def create_task(payload: dict[str, Any] = Body(...), owner_id: str = OwnerHeader) -> Task:
    return await task_service.create_task(owner_id=owner_id, task=payload)


@router.post("/series", status_code=constants.HTTP_CREATED)
async def create_series(payload: dict[str, Any] = Body(...), owner_id: str = OwnerHeader) -> SeriesCreated:
    """Create a recurring task and materialize its occurrences."""
    return await series_service.create_series(owner_id=owner_id, series=payload)


@router.get("/series/{series_id}")
async def get_series(series_id: str, owner_id: str = OwnerHeader) -> SeriesView:
    return await series_service.get_series(series_id=series_id, owner_id=owner_id)


@router.post("/series/{series_id}/complete")
async def complete_series(series_id: str, owner_id: str = OwnerHeader) -> dict[str, int]:
    """Mark every open occurrence of a series as done."""
    count = await series_service.complete_series(series_id=series_id, owner_id=owner_id)
    return {"completed": count}


@router.post("/series/{series_id}/extend")
async def extend_series(
    series_id: str,
    window_end: str | None = None,
    owner_id: str = OwnerHeader,
) -> dict[str, int]:
    """Materialize occurrences up to ``window_end`` (capped by the horizon)."""
    count = await series_service.extend_series(
        series_id=series_id,
        owner_id=owner_id,
        window_end=_parse_date_param("window_end", window_end),
    )
    return {"created": count}


@router.delete("/series/{series_id}")
async def delete_series(series_id: str, owner_id: str = OwnerHeader) -> dict[str, int]:
    count = await series_service.delete_series(series_id=series_id, owner_id=owner_id)
    return {"deleted": count}


@router.get("/calendar/{year}/{month}")
async def get_month_grid(year: int, month: int, owner_id: str = OwnerHeader) -> dict[str, list[Task]]:
    """Every day of a month mapped to the tasks due that day."""
    return await calendar_service.get_month_grid(owner_id=owner_id, year=year, month=month)


@router.get("/day/{day}")
async def get_day_view(day: str, owner_id: str = OwnerHeader) -> DayView:
    """One day's all-day list and laid-out timeline."""
    return await calendar_service.get_day_view(owner_id=owner_id, day=_parse_date_param("day", day))


@router.patch("/{task_id}")
async def update_task(task_id: str, payload: dict[str, Any] = Body(...), owner_id: str = OwnerHeader) -> Task:
    """Partially update one task. Occurrence edits never touch siblings."""
    return await task_service.update_task(task_id=task_id, owner_id=owner_id, changes=payload)


@router.post("/{task_id}/toggle")
async def toggle_task(task_id: str, owner_id: str = OwnerHeader) -> Task:
    return await task_service.toggle_task_status(task_id=task_id, owner_id=owner_id)


@router.post("/{task_id}/complete")
async def complete_task(task_id: str, owner_id: str = OwnerHeader) -> Task:
    """Mark one task or occurrence as done."""
    return await series_service.complete_occurrence(task_id=task_id, owner_id=owner_id)


@router.delete("/{task_id}")
async def delete_task(task_id: str, owner_id: str = OwnerHeader) -> dict[str, str]:
    """Delete one task or occurrence."""
    deleted_id = await series_service.delete_occurrence(task_id=task_id, owner_id=owner_id)
    return {"deleted": deleted_id}
