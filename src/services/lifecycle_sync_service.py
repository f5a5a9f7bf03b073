"""Launch/foreground resync of a user's reminders.

Both steps recompute everything from the store, so a failed or interrupted
sync is simply repeated at the next trigger:

1. Missed sweep: unsent reminders whose time passed within the lookback
   window get an immediate catch-up notification and are marked sent.
2. Active rearm: the user's reminder notifications are dropped and the
   store's unsent future reminders are armed again, rebuilding the user's
   part of the handle map. Other users' notifications are left alone.
"""

import logging
from datetime import datetime

from src.core import message_templates
from src.core.config import settings
from src.core.errors import DeviceNotificationError, ReminderStoreError, classify_sync_error
from src.core.logging import log_with_user_context, span
from src.core.reminder_timing import parse_timestamp
from src.domain.reminder import NotificationContent
from src.interface import device_notifications
from src.interface.notification_handler import Navigator, Presenter, notification_handler
from src.models.service_models import ExpirySweepResult, MissedSweepResult, RearmResult, SyncResult
from src.services import reminder_store


logger = logging.getLogger(__name__)


async def _mark_delivered(content: NotificationContent) -> None:
    """Mark a scheduled reminder sent once its notification was shown.

    Catch-up notifications are marked by the missed sweep itself.
    """
    if content.missed or not content.reminder_id:
        return
    try:
        await reminder_store.mark_sent(content.reminder_id)
    except ReminderStoreError as e:
        # Left unsent, the missed sweep replays it within the lookback window
        logger.warning(
            "Could not mark delivered reminder as sent",
            extra={"reminder_id": content.reminder_id, "error": str(e)},
        )


def initialize_notifications(
    *,
    presenter: Presenter | None = None,
    navigator: Navigator | None = None,
    permission_granted: bool | None = None,
) -> bool:
    """Register the process-wide notification handler and the delivery bookkeeping.

    Safe to call any number of times; only the first registration takes effect.

    Returns:
        Whether notifications can be scheduled
    """
    granted = notification_handler.initialize(
        presenter=presenter,
        navigator=navigator,
        permission_granted=settings.notification_permission_granted if permission_granted is None else permission_granted,
    )
    notification_handler.add_delivery_listener(_mark_delivered)
    return granted


async def sweep_missed(user_id: str, *, now: datetime) -> MissedSweepResult:
    """Send catch-up notifications for reminders missed within the lookback window.

    Each reminder is handled on its own: one failed notification does not stop
    the others and stays unsent for the next sync.

    Raises:
        ReminderStoreError: If the missed reminders cannot be listed
    """
    with span("lifecycle_sync_service.sweep_missed"):
        missed = await reminder_store.list_missed(user_id, now)
        result = MissedSweepResult(found=len(missed))

        for reminder in missed:
            content = message_templates.missed_reminder(
                task_id=reminder.task_id,
                task_title=reminder.task_title,
                reminder_id=reminder.id,
                user_id=user_id,
            )
            try:
                await device_notifications.device_adapter.present_now(content)
            except DeviceNotificationError as e:
                result.failed += 1
                logger.warning(
                    "Missed reminder notification failed",
                    extra={"reminder_id": reminder.id, "reason": e.reason.value, "error": str(e)},
                )
                continue

            try:
                await reminder_store.mark_sent(reminder.id)
            except ReminderStoreError as e:
                result.failed += 1
                logger.warning("Could not mark missed reminder sent", extra={"reminder_id": reminder.id, "error": str(e)})
                continue
            result.replayed += 1

        log_with_user_context(
            logger, "info", "Missed reminder sweep finished", user_id=user_id, found=result.found, replayed=result.replayed
        )
        return result


async def expire_stale(user_id: str, *, now: datetime) -> ExpirySweepResult:
    """Mark unsent reminders older than the lookback window as sent, silently.

    Disabled unless ``expire_stale_reminders`` is set.

    Raises:
        ReminderStoreError: If the store cannot be read or written
    """
    if not settings.expire_stale_reminders:
        return ExpirySweepResult(enabled=False)

    with span("lifecycle_sync_service.expire_stale"):
        stale = await reminder_store.list_stale(user_id, now)
        for reminder in stale:
            await reminder_store.mark_sent(reminder.id)

        if stale:
            log_with_user_context(logger, "info", "Expired stale reminders", user_id=user_id, expired=len(stale))
        return ExpirySweepResult(enabled=True, expired=len(stale))


async def rearm_active(user_id: str, *, now: datetime) -> RearmResult:
    """Drop the user's reminder notifications and arm their active reminders again.

    The active set is read before anything is cancelled, so a store outage
    leaves the currently armed notifications in place.

    Raises:
        ReminderStoreError: If the active reminders cannot be listed
    """
    with span("lifecycle_sync_service.rearm_active"):
        active = await reminder_store.list_active(user_id, now)
        adapter = device_notifications.device_adapter

        await adapter.cancel_all(user_id)

        result = RearmResult(active=len(active))
        handles: dict[str, str] = {}
        for reminder in active:
            fire_at = parse_timestamp(reminder.reminder_time)
            if fire_at <= now:
                result.skipped += 1
                continue

            content = message_templates.upcoming_reminder(
                task_id=reminder.task_id,
                task_title=reminder.task_title,
                reminder_id=reminder.id,
                user_id=user_id,
            )
            try:
                handles[reminder.id] = await adapter.schedule_at(content, fire_at, now=now)
            except DeviceNotificationError as e:
                result.failed += 1
                logger.warning(
                    "Could not re-arm reminder",
                    extra={"reminder_id": reminder.id, "reason": e.reason.value, "error": str(e)},
                )
                continue
            result.armed += 1

        await adapter.remember_handles(handles)

        log_with_user_context(
            logger, "info", "Active reminders re-armed", user_id=user_id, active=result.active, armed=result.armed
        )
        return result


def _log_step_failure(step: str, user_id: str, error: Exception) -> str:
    category, message = classify_sync_error(error)
    log_with_user_context(
        logger,
        "error",
        "Reminder sync step failed",
        user_id=user_id,
        step=step,
        category=category.value,
        error=str(error),
    )
    return message


async def on_app_foreground_or_launch(user_id: str, *, now: datetime | None = None) -> SyncResult:
    """Entry point for app launch and every transition to the foreground.

    Never raises for store or device failures; each step reports its own
    outcome and the whole sync is retried at the next trigger.
    """
    with span("lifecycle_sync_service.on_app_foreground_or_launch"):
        now = now or datetime.now()

        try:
            missed = await sweep_missed(user_id, now=now)
        except ReminderStoreError as e:
            missed = MissedSweepResult(ok=False, error=_log_step_failure("missed_sweep", user_id, e))

        try:
            expiry = await expire_stale(user_id, now=now)
        except ReminderStoreError as e:
            expiry = ExpirySweepResult(enabled=True, ok=False, error=_log_step_failure("expiry_sweep", user_id, e))

        try:
            rearm = await rearm_active(user_id, now=now)
        except ReminderStoreError as e:
            rearm = RearmResult(ok=False, error=_log_step_failure("active_rearm", user_id, e))

        return SyncResult(user_id=user_id, missed=missed, expiry=expiry, rearm=rearm)
