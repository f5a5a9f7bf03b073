"""Task domain models and enums, as seen by the reminder core."""

from datetime import date, time
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from src.domain.reminder import ReminderType


class TaskStatus(StrEnum):
    """Task lifecycle status."""

    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class Task(BaseModel):
    """Task data transfer object.

    Tasks are created and edited by the task CRUD layer; only the fields that
    decide whether and when a reminder fires are modelled here.
    """

    id: str = Field(..., description="Unique task ID from database")
    user_id: str = Field(..., description="Owner user ID")
    title: str = Field(..., description="Task title")
    description: str | None = Field(default=None, description="Detailed task description")
    due_date: str | None = Field(default=None, description="Due date (ISO format)")
    due_time: str | None = Field(default=None, description="Due time (HH:MM or HH:MM:SS)")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Current lifecycle status")
    reminder_type: ReminderType = Field(default=ReminderType.NONE, description="Reminder offset policy")

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> object:
        """Accept integer IDs from the store."""
        return str(v) if isinstance(v, int) else v

    @field_validator("due_date", "due_time", mode="before")
    @classmethod
    def serialize_temporal(cls, v: object) -> object:
        """Store date/time objects in their ISO string form; blank means unset."""
        if isinstance(v, date | time):
            return v.isoformat()
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("reminder_type", mode="before")
    @classmethod
    def normalize_reminder_type(cls, v: object) -> object:
        """Accept the short choices used by the task form."""
        if v is None:
            return ReminderType.NONE
        if isinstance(v, str):
            return ReminderType.from_choice(v)
        return v

    @property
    def is_completed(self) -> bool:
        """Completed tasks never fire reminders."""
        return self.status == TaskStatus.COMPLETED

    def schedule_inputs(self) -> tuple[str | None, str | None, ReminderType]:
        """Fields that determine the reminder fire time."""
        return (self.due_date, self.due_time, self.reminder_type)
