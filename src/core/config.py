"""Configuration management for remindersync."""

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

    # Relational store
    sqlite_db_path: str = Field(default="./data/remindersync.db", description="SQLite database file path")

    # Local key-value storage for the reminder -> notification handle map (optional)
    redis_url: str | None = Field(default=None, description="Redis connection URL (e.g., redis://localhost:6379)")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    service_environment: str = Field(default="production", description="Environment name reported to Logfire")

    # Reminder behaviour
    missed_reminder_lookback_hours: int = Field(
        default=24, description="How far back the missed-reminder sweep replays unsent reminders (in hours)"
    )
    expire_stale_reminders: bool = Field(
        default=False,
        description="Mark unsent reminders older than the lookback window as sent without notifying",
    )
    notification_permission_granted: bool = Field(
        default=True, description="Whether the host granted permission to show local notifications"
    )


# Application Constants
class Constants:
    """Application-wide constants."""

    # Store tables
    TASKS_TABLE: str = "todo_tasks"
    REMINDERS_TABLE: str = "todo_reminders"

    # Time math
    DEFAULT_DUE_HOUR: int = 9  # Anchor used when a task has a due date but no due time
    DEFAULT_DUE_MINUTE: int = 0

    # Local key-value storage
    REMINDERS_MAP_KEY: str = "notifications_reminders_map"

    # Scheduler
    REMINDER_JOBSTORE: str = "reminders"
    REMINDER_MISFIRE_GRACE_SECONDS: int = 300

    # Navigation
    TASK_DETAILS_ROUTE: str = "/tasks/details/{task_id}"

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100  # Default pagination limit for list queries

    # Redis Configuration
    REDIS_MAX_CONNECTIONS: int = 10  # Maximum connections in Redis connection pool
    REDIS_RETRY_ATTEMPTS: int = 3
    REDIS_RETRY_BASE_DELAY_SECONDS: float = 0.1


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
