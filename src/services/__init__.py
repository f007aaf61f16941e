from src.services import (
    calendar_service,
    series_service,
    task_service,
)


__all__ = [
    "calendar_service",
    "series_service",
    "task_service",
]
