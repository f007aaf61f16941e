"""Error taxonomy for the task engine and its mapping to API responses."""

from enum import Enum

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.core.config import constants


class AllMeError(Exception):
    """Base class for task engine errors."""


class ValidationError(AllMeError, ValueError):
    """Malformed or missing required input. Raised before any write is attempted."""


class PersistenceError(AllMeError, RuntimeError):
    """The underlying store rejected a read or write."""


class NotFoundError(PersistenceError, KeyError):
    """A single-record operation named an id that is unknown or not owned by the caller."""

    def __str__(self) -> str:
        # KeyError wraps its message in quotes
        return str(self.args[0]) if self.args else ""


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_PERSISTENCE = "ERR_PERSISTENCE"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, ValidationError):
        return ErrorResponse(
            code=ErrorCode.ERR_VALIDATION,
            message=str(exception),
            suggestion="Check the task fields and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, NotFoundError):
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_FOUND,
            message="Task not found.",
            suggestion="Refresh your task list and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, PersistenceError):
        return ErrorResponse(
            code=ErrorCode.ERR_PERSISTENCE,
            message="Your change could not be saved.",
            suggestion="Please try again in a moment.",
            severity=ErrorSeverity.HIGH,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred. Please try again later.",
        suggestion="If the problem persists, contact support.",
        severity=ErrorSeverity.HIGH,
    )


def http_status_for(exception: Exception) -> int:
    """Map an error to the HTTP status code the API returns for it."""
    if isinstance(exception, ValidationError):
        return constants.HTTP_UNPROCESSABLE
    if isinstance(exception, NotFoundError):
        return constants.HTTP_NOT_FOUND
    if isinstance(exception, PersistenceError):
        return constants.HTTP_BAD_GATEWAY
    return constants.HTTP_SERVER_ERROR


def validation_error_from(error: PydanticValidationError) -> ValidationError:
    """Convert a pydantic validation failure into a domain ValidationError."""
    messages = []
    for item in error.errors():
        message = str(item.get("msg", "")).removeprefix("Value error, ")
        location = ".".join(str(part) for part in item.get("loc", ()))
        messages.append(f"{location}: {message}" if location else message)
    return ValidationError("; ".join(messages) or str(error))
