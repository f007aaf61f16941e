"""Configuration management for allme."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="data/allme.db", description="Path to the SQLite database file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Recurrence Configuration
    recurrence_horizon_days: int = Field(
        default=90,
        ge=0,
        description="How many days ahead occurrences of a recurring task are materialized",
    )

    # Timeline Configuration
    default_task_duration_minutes: int = Field(
        default=60,
        gt=0,
        description="Duration assumed for timed tasks that have a start time but no end time",
    )

    # Task Content Limits
    title_max_length: int = Field(default=200, gt=0, description="Maximum task title length")
    description_max_length: int = Field(default=1000, gt=0, description="Maximum task description length")


# Application Constants
class Constants:
    """Application-wide constants."""

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_CREATED: int = 201
    HTTP_NOT_FOUND: int = 404
    HTTP_UNPROCESSABLE: int = 422
    HTTP_BAD_GATEWAY: int = 502
    HTTP_SERVER_ERROR: int = 500

    # Request Headers
    OWNER_HEADER: str = "X-Owner-Id"  # Set by the upstream auth layer

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 1000  # Default page size for task list queries


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
