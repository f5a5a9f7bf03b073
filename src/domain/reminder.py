"""Reminder domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class ReminderType(StrEnum):
    """Offset policy between a task's due moment and its reminder."""

    NONE = "none"
    AT_TIME = "at_time"
    FIVE_MIN_BEFORE = "5_min_before"
    FIFTEEN_MIN_BEFORE = "15_min_before"
    THIRTY_MIN_BEFORE = "30_min_before"
    ONE_HOUR_BEFORE = "1_hour_before"
    ONE_DAY_BEFORE = "1_day_before"

    @classmethod
    def from_choice(cls, value: "str | ReminderType") -> "ReminderType":
        """Resolve a stored value or a task-form short choice ("5min", "1day", ...)."""
        if isinstance(value, ReminderType):
            return value
        normalized = value.strip().lower()
        return _FORM_CHOICES.get(normalized) or cls(normalized)


_FORM_CHOICES = {
    "5min": ReminderType.FIVE_MIN_BEFORE,
    "15min": ReminderType.FIFTEEN_MIN_BEFORE,
    "30min": ReminderType.THIRTY_MIN_BEFORE,
    "1hour": ReminderType.ONE_HOUR_BEFORE,
    "1day": ReminderType.ONE_DAY_BEFORE,
}


class Reminder(BaseModel):
    """Persisted reminder: notify once, at reminder_time, about task_id."""

    id: str = Field(..., description="Reminder ID assigned by the store")
    task_id: str = Field(..., description="Owning task ID (one reminder per task)")
    reminder_type: ReminderType = Field(..., description="Offset policy the time was derived from")
    reminder_time: str = Field(..., description="Local fire time (ISO format, second precision)")
    is_sent: bool = Field(default=False, description="Set once the reminder has been delivered")
    created: str | None = Field(default=None, description="Creation timestamp (ISO format)")
    updated: str | None = Field(default=None, description="Last update timestamp (ISO format)")


class ReminderWithTask(Reminder):
    """Reminder joined with the title of its task."""

    task_title: str = Field(..., description="Title of the owning task")


class NotificationContent(BaseModel):
    """What a local notification shows and carries back when tapped."""

    title: str
    body: str
    task_id: str
    reminder_id: str | None = None
    user_id: str | None = Field(default=None, description="Owner of the task; scopes per-user cancellation")
    missed: bool = False

    def data(self) -> dict[str, str | bool]:
        """Payload attached to the notification for tap routing."""
        payload: dict[str, str | bool] = {"task_id": self.task_id}
        if self.reminder_id is not None:
            payload["reminder_id"] = self.reminder_id
        if self.missed:
            payload["missed"] = True
        return payload
