"""Domain models and DTOs."""

from src.domain.reminder import NotificationContent, Reminder, ReminderType, ReminderWithTask
from src.domain.task import Task, TaskStatus


__all__ = [
    "NotificationContent",
    "Reminder",
    "ReminderType",
    "ReminderWithTask",
    "Task",
    "TaskStatus",
]
