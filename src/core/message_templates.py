"""Centralized message templates for local notifications.

All user-facing notification strings are defined here so wording can be
changed in one place.
"""

from src.domain.reminder import NotificationContent


def upcoming_reminder(
    *, task_id: str, task_title: str, reminder_id: str | None = None, user_id: str | None = None
) -> NotificationContent:
    return NotificationContent(
        title="Task reminder",
        body=f"[{task_title}] is due soon",
        task_id=task_id,
        reminder_id=reminder_id,
        user_id=user_id,
    )


def missed_reminder(
    *, task_id: str, task_title: str, reminder_id: str | None = None, user_id: str | None = None
) -> NotificationContent:
    return NotificationContent(
        title="Missed task reminder",
        body=f'You missed the reminder for task "{task_title}"',
        task_id=task_id,
        reminder_id=reminder_id,
        user_id=user_id,
        missed=True,
    )


def diagnostic_notification() -> NotificationContent:
    """Build the diagnostic notification sent from the notifications health page."""
    return NotificationContent(
        title="Test notification",
        body="This is an immediately delivered test notification",
        task_id="",
    )
