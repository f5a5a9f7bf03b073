"""Local notification scheduling on the in-process scheduler.

A handle is the scheduler job id of one armed notification. The
reminder -> handle map lets a single reminder's notification be cancelled
without touching the others. The map is a cache: it lives in local key-value
storage, may be lost at any time and is rebuilt on every full resync.
"""

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from src.core.config import Constants
from src.core.errors import DeviceNotificationError, DeviceNotificationReason
from src.core.redis_client import RedisClient, redis_client
from src.core.scheduler import scheduler
from src.domain.reminder import NotificationContent
from src.interface.notification_handler import NotificationHandler, notification_handler


logger = logging.getLogger(__name__)


class HandleMap:
    """JSON map of reminder id -> notification handle under one storage key.

    Read-modify-write updates run under one lock so overlapping arms and
    cancels in this process cannot drop each other's entries.
    """

    def __init__(self, store: RedisClient | None = None, key: str = Constants.REMINDERS_MAP_KEY) -> None:
        """Initialize handle map storage."""
        self._store = store or redis_client
        self._key = key
        self._lock = asyncio.Lock()
        # Fallback in-memory storage when Redis is unavailable
        self._memory: dict[str, str] = {}

    async def load(self) -> dict[str, str]:
        """Read the whole map; unreadable data counts as an empty map."""
        if not self._store.is_available:
            return dict(self._memory)

        raw = await self._store.get(self._key)
        if not raw:
            return {}
        try:
            mapping = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable reminder handle map")
            return {}
        if not isinstance(mapping, dict):
            return {}
        return {str(k): str(v) for k, v in mapping.items()}

    async def _write(self, mapping: dict[str, str]) -> None:
        if not self._store.is_available:
            self._memory = dict(mapping)
            return

        if not await self._store.set_with_retry(self._key, json.dumps(mapping)):
            logger.warning("Could not persist reminder handle map", extra={"entries": len(mapping)})

    async def save(self, mapping: dict[str, str]) -> None:
        """Replace the whole map."""
        async with self._lock:
            await self._write(mapping)

    async def get(self, reminder_id: str) -> str | None:
        return (await self.load()).get(reminder_id)

    async def put(self, reminder_id: str, handle: str) -> None:
        await self.merge({reminder_id: handle})

    async def merge(self, entries: dict[str, str]) -> None:
        """Add or overwrite entries, keeping the rest of the map."""
        async with self._lock:
            mapping = await self.load()
            mapping.update(entries)
            await self._write(mapping)

    async def pop(self, reminder_id: str) -> str | None:
        async with self._lock:
            mapping = await self.load()
            handle = mapping.pop(reminder_id, None)
            if handle is not None:
                await self._write(mapping)
            return handle

    async def retain(self, keep: Callable[[str], bool]) -> None:
        """Drop every entry whose handle fails ``keep``."""
        async with self._lock:
            mapping = await self.load()
            kept = {reminder_id: handle for reminder_id, handle in mapping.items() if keep(handle)}
            if len(kept) != len(mapping):
                await self._write(kept)


class DeviceNotificationAdapter:
    """Arms, cancels and lists one-shot reminder notifications."""

    def __init__(
        self,
        *,
        job_scheduler: AsyncIOScheduler,
        handler: NotificationHandler,
        handle_map: HandleMap,
        jobstore: str = Constants.REMINDER_JOBSTORE,
    ) -> None:
        """Initialize the adapter around a scheduler and a notification handler."""
        self._scheduler = job_scheduler
        self._handler = handler
        self._handle_map = handle_map
        self._jobstore = jobstore

    async def schedule_at(
        self,
        content: NotificationContent,
        fire_at: datetime,
        *,
        now: datetime | None = None,
    ) -> str:
        """Arm a one-shot notification.

        Args:
            content: What the notification shows
            fire_at: Naive local time to fire at; must be strictly in the future
            now: Reference time (defaults to the current local time)

        Returns:
            Handle of the armed notification

        Raises:
            DeviceNotificationError: Permission missing, past fire time, or scheduler failure
        """
        if not self._handler.permission_granted:
            raise DeviceNotificationError(
                "Notification permission not granted", reason=DeviceNotificationReason.PERMISSION_DENIED
            )

        now = now or datetime.now()
        if fire_at <= now:
            raise DeviceNotificationError(
                f"Fire time {fire_at.isoformat()} is not in the future",
                reason=DeviceNotificationReason.PAST_FIRE_TIME,
            )

        handle = uuid.uuid4().hex
        try:
            self._scheduler.add_job(
                self._handler.present,
                trigger=DateTrigger(run_date=fire_at),
                args=[content],
                id=handle,
                name=f"reminder:{content.reminder_id or content.task_id}",
                jobstore=self._jobstore,
                misfire_grace_time=Constants.REMINDER_MISFIRE_GRACE_SECONDS,
            )
        except Exception as e:
            raise DeviceNotificationError(
                f"Scheduler rejected notification: {e}", reason=DeviceNotificationReason.SCHEDULER_ERROR
            ) from e

        logger.info(
            "Scheduled notification",
            extra={"handle": handle, "fire_at": fire_at.isoformat(), "data": content.data()},
        )
        return handle

    async def present_now(self, content: NotificationContent) -> None:
        """Show a notification immediately.

        Raises:
            DeviceNotificationError: If notifications are not permitted or the presenter fails
        """
        if not self._handler.permission_granted:
            raise DeviceNotificationError(
                "Notification permission not granted", reason=DeviceNotificationReason.PERMISSION_DENIED
            )
        try:
            await self._handler.present(content)
        except Exception as e:
            raise DeviceNotificationError(
                f"Notification delivery failed: {e}", reason=DeviceNotificationReason.DELIVERY_FAILED
            ) from e

    async def cancel(self, handle: str) -> None:
        """Disarm a notification; unknown, fired or cancelled handles are ignored."""
        try:
            self._scheduler.remove_job(handle, jobstore=self._jobstore)
        except JobLookupError:
            logger.debug("Notification already gone", extra={"handle": handle})
            return
        logger.info("Cancelled notification", extra={"handle": handle})

    async def cancel_all(self, user_id: str | None = None) -> int:
        """Disarm reminder notifications and forget their handles.

        Args:
            user_id: Only disarm this user's notifications; every one when omitted

        Returns:
            Number of notifications disarmed
        """
        if user_id is None:
            count = len(self._scheduler.get_jobs(jobstore=self._jobstore))
            self._scheduler.remove_all_jobs(jobstore=self._jobstore)
            await self._handle_map.save({})
            logger.info("Cancelled all reminder notifications", extra={"count": count})
            return count

        owned = [job.id for job in self._scheduler.get_jobs(jobstore=self._jobstore) if _owner(job) == user_id]
        for handle in owned:
            try:
                self._scheduler.remove_job(handle, jobstore=self._jobstore)
            except JobLookupError:
                continue
        # Also forgets handles of notifications that already fired
        await self._handle_map.retain(self.is_scheduled)
        logger.info("Cancelled user reminder notifications", extra={"user_id": user_id, "count": len(owned)})
        return len(owned)

    def list_scheduled(self) -> list[str]:
        """Handles of all armed reminder notifications (diagnostics)."""
        return [job.id for job in self._scheduler.get_jobs(jobstore=self._jobstore)]

    def is_scheduled(self, handle: str) -> bool:
        return self._scheduler.get_job(handle, jobstore=self._jobstore) is not None

    async def get_handle(self, reminder_id: str) -> str | None:
        return await self._handle_map.get(reminder_id)

    async def load_handle_map(self) -> dict[str, str]:
        return await self._handle_map.load()

    async def remember_handles(self, handles: dict[str, str]) -> None:
        """Record reminder -> handle entries, keeping all other entries."""
        await self._handle_map.merge(handles)

    async def arm_reminder(
        self,
        reminder_id: str,
        content: NotificationContent,
        fire_at: datetime,
        *,
        now: datetime | None = None,
    ) -> str:
        """Replace a reminder's notification with a new one and remember its handle."""
        await self.cancel_for_reminder(reminder_id)
        handle = await self.schedule_at(content, fire_at, now=now)
        await self._handle_map.put(reminder_id, handle)
        return handle

    async def cancel_for_reminder(self, reminder_id: str) -> bool:
        """Disarm the notification of one reminder, if the map knows it."""
        handle = await self._handle_map.pop(reminder_id)
        if handle is None:
            return False
        await self.cancel(handle)
        return True


def _owner(job) -> str | None:
    content = job.args[0] if job.args else None
    return content.user_id if isinstance(content, NotificationContent) else None


# Global adapter instance
device_adapter = DeviceNotificationAdapter(
    job_scheduler=scheduler,
    handler=notification_handler,
    handle_map=HandleMap(),
)
