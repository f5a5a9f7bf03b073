"""Keeps one task's persisted reminder and armed notification in line with the task.

Every change is applied store first, device second. The store is the source
of truth; a notification that could not be armed is re-armed by the next
lifecycle sync.
"""

import logging
from datetime import datetime

from src.core import message_templates
from src.core.errors import DeviceNotificationError, ReminderStoreError, classify_sync_error
from src.core.logging import log_with_user_context, span
from src.core.reminder_timing import compute_reminder_time, format_timestamp, parse_timestamp
from src.domain.reminder import Reminder
from src.domain.task import Task, TaskStatus
from src.interface import device_notifications
from src.models.service_models import ReconcileAction, ReconcileOutcome
from src.services import reminder_store


logger = logging.getLogger(__name__)


async def _remove_reminders(task_id: str) -> list[str]:
    """Delete a task's reminders, then disarm their notifications."""
    removed_ids = await reminder_store.delete_by_task(task_id)
    for reminder_id in removed_ids:
        await device_notifications.device_adapter.cancel_for_reminder(reminder_id)
    return removed_ids


async def _arm(reminder: Reminder, task: Task, now: datetime) -> ReconcileOutcome:
    fire_at = parse_timestamp(reminder.reminder_time)
    outcome = ReconcileOutcome(
        task_id=task.id,
        action=ReconcileAction.SCHEDULED,
        reminder_id=reminder.id,
        reminder_time=reminder.reminder_time,
    )

    if fire_at <= now:
        # Arming a past time would fail; the missed sweep surfaces it on the next sync
        await device_notifications.device_adapter.cancel_for_reminder(reminder.id)
        logger.info(
            "Reminder time already passed, persisted for missed sweep",
            extra={"task_id": task.id, "reminder_id": reminder.id, "reminder_time": reminder.reminder_time},
        )
        outcome.action = ReconcileAction.PERSISTED_PAST
        return outcome

    content = message_templates.upcoming_reminder(
        task_id=task.id, task_title=task.title, reminder_id=reminder.id, user_id=task.user_id
    )
    try:
        outcome.handle = await device_notifications.device_adapter.arm_reminder(reminder.id, content, fire_at, now=now)
    except DeviceNotificationError as e:
        category, message = classify_sync_error(e)
        log_with_user_context(
            logger,
            "warning",
            "Could not arm reminder notification",
            user_id=task.user_id,
            task_id=task.id,
            reminder_id=reminder.id,
            category=category.value,
            error=str(e),
        )
        outcome.action = ReconcileAction.DEVICE_FAILED
        outcome.error = message
    return outcome


async def _is_armed(reminder: Reminder) -> bool:
    handle = await device_notifications.device_adapter.get_handle(reminder.id)
    return handle is not None and device_notifications.device_adapter.is_scheduled(handle)


async def reconcile_task(
    task: Task,
    previous_task: Task | None = None,
    *,
    now: datetime | None = None,
) -> ReconcileOutcome:
    """Converge a task's reminder on what its current state asks for.

    Args:
        task: Task as it is now
        previous_task: Task before the change, when the caller knows it
        now: Reference time (defaults to the current local time)

    Returns:
        ReconcileOutcome describing the applied change

    Raises:
        ReminderStoreError: If the store cannot be read or written
    """
    with span("reconciliation_service.reconcile_task"):
        now = now or datetime.now()

        if task.is_completed:
            removed = await _remove_reminders(task.id)
            logger.info("Task completed, reminder removed", extra={"task_id": task.id, "removed": removed})
            return ReconcileOutcome(task_id=task.id, action=ReconcileAction.REMOVED, removed_reminder_ids=removed)

        desired_time = compute_reminder_time(task.due_date, task.due_time, task.reminder_type)
        if desired_time is None:
            removed = await _remove_reminders(task.id)
            logger.info("Task needs no reminder", extra={"task_id": task.id, "removed": removed})
            return ReconcileOutcome(task_id=task.id, action=ReconcileAction.REMOVED, removed_reminder_ids=removed)

        replaced_ids: list[str] = []
        current: Reminder | None = None
        if previous_task is not None and previous_task.schedule_inputs() != task.schedule_inputs():
            replaced_ids = await _remove_reminders(task.id)
        else:
            current = await reminder_store.find_by_task(task.id)

        converged = (
            current is not None
            and current.reminder_type == task.reminder_type
            and current.reminder_time == format_timestamp(desired_time)
        )
        if current is not None and converged:
            title_changed = previous_task is not None and previous_task.title != task.title
            if current.is_sent or (not title_changed and await _is_armed(current)):
                return ReconcileOutcome(
                    task_id=task.id,
                    action=ReconcileAction.UNCHANGED,
                    reminder_id=current.id,
                    reminder_time=current.reminder_time,
                    handle=await device_notifications.device_adapter.get_handle(current.id),
                )
            reminder = current
        else:
            reminder = await reminder_store.upsert(task.id, task.reminder_type, desired_time)

        outcome = await _arm(reminder, task, now)
        outcome.removed_reminder_ids = replaced_ids
        return outcome


async def on_task_reminder_relevant_change(task: Task, previous_task: Task | None = None) -> ReconcileOutcome:
    """Entry point for task creation and edits.

    Store failures are logged and reported in the outcome; the next task
    change or lifecycle sync retries.
    """
    try:
        return await reconcile_task(task, previous_task)
    except ReminderStoreError as e:
        category, message = classify_sync_error(e)
        log_with_user_context(
            logger,
            "error",
            "Reminder reconciliation failed",
            user_id=task.user_id,
            task_id=task.id,
            category=category.value,
            error=str(e),
        )
        return ReconcileOutcome(task_id=task.id, action=ReconcileAction.STORE_FAILED, error=message)


async def on_task_completed(task: Task) -> ReconcileOutcome:
    """Entry point for marking a task done; its reminder never fires afterwards."""
    if not task.is_completed:
        task = task.model_copy(update={"status": TaskStatus.COMPLETED})
    return await on_task_reminder_relevant_change(task)


async def on_task_deleted(task_id: str) -> ReconcileOutcome:
    """Entry point for task deletion."""
    with span("reconciliation_service.on_task_deleted"):
        try:
            removed = await _remove_reminders(task_id)
        except ReminderStoreError as e:
            category, message = classify_sync_error(e)
            logger.error(
                "Reminder removal failed",
                extra={"task_id": task_id, "category": category.value, "error": str(e)},
            )
            return ReconcileOutcome(task_id=task_id, action=ReconcileAction.STORE_FAILED, error=message)

        logger.info("Task deleted, reminder removed", extra={"task_id": task_id, "removed": removed})
        return ReconcileOutcome(task_id=task_id, action=ReconcileAction.REMOVED, removed_reminder_ids=removed)
