"""Logging and observability configuration using Pydantic Logfire.

This module provides standardized logging utilities and configuration.
All modules should use Python's standard logging library (logging.getLogger(__name__)),
and Logfire will automatically capture and enrich these logs.

Standard usage:
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Message", extra={"key": "value"})

Structured logging utilities:
    log_with_owner_context(logger, "info", "series_created", owner_id="u1", series_id="abc", count=3)
"""

import logging

import logfire
from fastapi import FastAPI

from src.core.config import settings


def configure_logfire() -> None:
    """Configure Pydantic Logfire with token from environment."""
    logfire.configure(
        token=settings.logfire_token,
        service_name="allme",
        service_version="0.1.0",
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )

    logger = logging.getLogger(__name__)
    logger.info("Logfire configured successfully")


def instrument_fastapi(app: FastAPI) -> None:
    """Add Logfire instrumentation to FastAPI application."""
    logfire.instrument_fastapi(app)
    logger = logging.getLogger(__name__)
    logger.info("FastAPI instrumentation configured")


def span(name: str) -> logfire.LogfireSpan:
    """Create a custom span for service layer functions.

    Usage:
        with span("series_service.create_series"):
            # Your service logic here
            pass
    """
    return logfire.span(name)


def log_with_owner_context(
    logger: logging.Logger,
    level: str,
    message: str,
    owner_id: str | None = None,
    **context: object,
) -> None:
    """Log a service event with the owning user and the task or series it touched.

    Args:
        logger: Logger instance to use
        level: Log level ("debug", "info", "warning", "error", "critical")
        message: Event name, e.g. "series_deleted"
        owner_id: Owning user ID (omitted from the record when unknown)
        **context: Event fields such as series_id, task_id or count

    Usage:
        log_with_owner_context(logger, "info", "series_deleted", owner_id="u1", series_id="abc", count=5)
    """
    extra = {"owner_id": owner_id, **context} if owner_id else context
    getattr(logger, level.lower())(message, extra=extra)
