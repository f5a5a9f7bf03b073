"""Unit tests for the launch/foreground reminder sync."""

from datetime import datetime, timedelta

import pytest

from src.core import message_templates
from src.core.config import settings
from src.core.errors import ReminderStoreError
from src.domain.reminder import NotificationContent, ReminderType
from src.interface import device_notifications
from src.interface.device_notifications import DeviceNotificationAdapter
from src.interface.notification_handler import NotificationHandler
from src.services import lifecycle_sync_service, reconciliation_service, reminder_store


NOW = datetime(2030, 3, 10, 12, 0, 0)


@pytest.fixture
def reminder_at(task_factory):
    """Factory for a task of user-1 whose reminder fires at a given time."""

    async def _create(fire_at: datetime, *, title: str = "Task", user_id: str = "user-1"):
        task = await task_factory(title=title, user_id=user_id)
        return await reminder_store.upsert(task.id, ReminderType.AT_TIME, fire_at)

    return _create


async def _is_sent(task_id: str) -> bool:
    reminder = await reminder_store.find_by_task(task_id)
    assert reminder is not None
    return reminder.is_sent


@pytest.mark.unit
class TestMissedSweep:
    """Tests for catch-up notifications."""

    async def test_recent_missed_reminder_is_replayed_once(self, reminder_at, device_adapter, presented):
        missed = await reminder_at(NOW - timedelta(hours=2), title="Call mom")

        result = await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert result.missed.replayed == 1
        assert len(presented) == 1
        assert presented[0].missed is True
        assert presented[0].body == 'You missed the reminder for task "Call mom"'
        assert presented[0].data() == {"task_id": missed.task_id, "reminder_id": missed.id, "missed": True}
        assert await _is_sent(missed.task_id)

        again = await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert again.missed.found == 0
        assert len(presented) == 1

    async def test_three_day_absence_only_replays_last_day(self, reminder_at, device_adapter, presented):
        old = await reminder_at(NOW - timedelta(days=3), title="Old")
        recent = await reminder_at(NOW - timedelta(hours=23), title="Recent")
        await reminder_at(NOW - timedelta(hours=25), title="Just outside")

        result = await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert result.missed.replayed == 1
        assert [c.reminder_id for c in presented] == [recent.id]
        assert not await _is_sent(old.task_id)
        assert result.expiry.enabled is False

    async def test_failed_notification_does_not_stop_the_sweep(
        self, reminder_at, job_scheduler, handle_map, monkeypatch
    ):
        shown: list[NotificationContent] = []

        async def _flaky_presenter(content: NotificationContent) -> None:
            if "Broken" in content.body:
                raise OSError("display unavailable")
            shown.append(content)

        handler = NotificationHandler()
        handler.initialize(presenter=_flaky_presenter)
        adapter = DeviceNotificationAdapter(job_scheduler=job_scheduler, handler=handler, handle_map=handle_map)
        monkeypatch.setattr(device_notifications, "device_adapter", adapter)

        broken = await reminder_at(NOW - timedelta(hours=1), title="Broken")
        fine = await reminder_at(NOW - timedelta(hours=2), title="Fine")

        result = await lifecycle_sync_service.sweep_missed("user-1", now=NOW)

        assert result.found == 2
        assert result.replayed == 1
        assert result.failed == 1
        assert [c.reminder_id for c in shown] == [fine.id]
        assert not await _is_sent(broken.task_id)
        assert await _is_sent(fine.task_id)

    async def test_other_users_reminders_are_untouched(self, reminder_at, device_adapter, presented):
        await reminder_at(NOW - timedelta(hours=1), user_id="user-2")

        result = await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert result.missed.found == 0
        assert presented == []


@pytest.mark.unit
class TestExpirySweep:
    """Tests for the opt-in stale reminder expiry."""

    async def test_disabled_by_default(self, reminder_at, device_adapter):
        await reminder_at(NOW - timedelta(days=3))

        result = await lifecycle_sync_service.expire_stale("user-1", now=NOW)

        assert result.enabled is False
        assert result.expired == 0

    async def test_marks_stale_reminders_sent_silently(self, reminder_at, device_adapter, presented, monkeypatch):
        monkeypatch.setattr(settings, "expire_stale_reminders", True)
        stale = await reminder_at(NOW - timedelta(days=3))

        result = await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert result.expiry.enabled is True
        assert result.expiry.expired == 1
        assert presented == []
        assert await _is_sent(stale.task_id)


@pytest.mark.unit
class TestRearm:
    """Tests for re-arming active reminders."""

    async def test_arms_every_future_reminder(self, reminder_at, device_adapter):
        soon = await reminder_at(NOW + timedelta(hours=1))
        later = await reminder_at(NOW + timedelta(days=2))

        result = await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert result.ok
        assert result.rearm.armed == 2
        handle_map = await device_adapter.load_handle_map()
        assert set(handle_map) == {soon.id, later.id}
        assert sorted(device_adapter.list_scheduled()) == sorted(handle_map.values())

    async def test_replaces_previously_armed_notifications(self, reminder_at, device_adapter):
        reminder = await reminder_at(NOW + timedelta(hours=1))
        stray = await device_adapter.schedule_at(
            message_templates.upcoming_reminder(task_id="999", task_title="Gone", user_id="user-1"),
            NOW + timedelta(hours=3),
            now=NOW,
        )

        await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)
        first_handles = device_adapter.list_scheduled()
        await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert stray not in first_handles
        assert len(first_handles) == 1
        assert len(device_adapter.list_scheduled()) == 1
        assert list(await device_adapter.load_handle_map()) == [reminder.id]

    async def test_rebuilds_lost_handle_map(self, reminder_at, device_adapter, handle_map):
        reminder = await reminder_at(NOW + timedelta(hours=1))
        await handle_map.save({})

        await lifecycle_sync_service.rearm_active("user-1", now=NOW)

        assert await device_adapter.get_handle(reminder.id) is not None

    async def test_other_users_notifications_survive(self, task_factory, reminder_at, device_adapter):
        theirs = await task_factory(
            title="Dentist", user_id="user-2", due_date="2030-03-11", due_time="09:00", reminder_type="at_time"
        )
        armed = await reconciliation_service.reconcile_task(theirs, now=NOW)
        mine = await reminder_at(NOW + timedelta(hours=1))

        result = await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert result.rearm.armed == 1
        assert device_adapter.is_scheduled(armed.handle)
        handle_map = await device_adapter.load_handle_map()
        assert handle_map[armed.reminder_id] == armed.handle
        assert set(handle_map) == {armed.reminder_id, mine.id}
        assert len(device_adapter.list_scheduled()) == 2

    async def test_each_user_sync_keeps_the_other_armed(self, reminder_at, device_adapter):
        first = await reminder_at(NOW + timedelta(hours=1), user_id="user-1")
        second = await reminder_at(NOW + timedelta(hours=2), user_id="user-2")

        await lifecycle_sync_service.rearm_active("user-1", now=NOW)
        await lifecycle_sync_service.rearm_active("user-2", now=NOW)
        await lifecycle_sync_service.rearm_active("user-1", now=NOW)

        handle_map = await device_adapter.load_handle_map()
        assert set(handle_map) == {first.id, second.id}
        assert sorted(device_adapter.list_scheduled()) == sorted(handle_map.values())

    async def test_missed_and_future_reminders_are_both_handled(self, reminder_at, device_adapter, presented):
        missed = await reminder_at(NOW - timedelta(hours=1))
        upcoming = await reminder_at(NOW + timedelta(hours=1))

        result = await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert [c.reminder_id for c in presented] == [missed.id]
        assert result.rearm.armed == 1
        assert await device_adapter.get_handle(upcoming.id) is not None
        assert await device_adapter.get_handle(missed.id) is None

    async def test_permission_denied_counts_failures(self, reminder_at, device_adapter, monkeypatch):
        await reminder_at(NOW + timedelta(hours=1))
        monkeypatch.setattr(device_adapter._handler, "permission_granted", False)

        result = await lifecycle_sync_service.rearm_active("user-1", now=NOW)

        assert result.armed == 0
        assert result.failed == 1
        assert device_adapter.list_scheduled() == []


@pytest.mark.unit
class TestStoreFailures:
    """Tests for sync behaviour while the store is unavailable."""

    async def test_store_outage_keeps_armed_notifications(self, reminder_at, device_adapter, monkeypatch):
        await reminder_at(NOW + timedelta(hours=1))
        await lifecycle_sync_service.rearm_active("user-1", now=NOW)
        armed = device_adapter.list_scheduled()

        async def _unavailable(*args, **kwargs):
            raise ReminderStoreError("Reminder store list failed: database is locked")

        monkeypatch.setattr(reminder_store, "list_active", _unavailable)
        monkeypatch.setattr(reminder_store, "list_missed", _unavailable)

        result = await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert not result.ok
        assert result.missed.ok is False
        assert result.rearm.ok is False
        assert result.rearm.error is not None
        assert device_adapter.list_scheduled() == armed

    async def test_steps_run_independently(self, reminder_at, device_adapter, monkeypatch):
        await reminder_at(NOW + timedelta(hours=1))

        async def _unavailable(*args, **kwargs):
            raise ReminderStoreError("Reminder store list_missed failed")

        monkeypatch.setattr(reminder_store, "list_missed", _unavailable)

        result = await lifecycle_sync_service.on_app_foreground_or_launch("user-1", now=NOW)

        assert result.missed.ok is False
        assert result.rearm.ok is True
        assert result.rearm.armed == 1


@pytest.mark.unit
class TestInitializeNotifications:
    """Tests for handler registration at startup."""

    def test_registers_once_with_configured_permission(self, monkeypatch):
        handler = NotificationHandler()
        monkeypatch.setattr(lifecycle_sync_service, "notification_handler", handler)
        monkeypatch.setattr(settings, "notification_permission_granted", False)

        assert lifecycle_sync_service.initialize_notifications() is False
        assert lifecycle_sync_service.initialize_notifications(permission_granted=True) is False
        assert handler.is_initialized

    async def test_delivered_notification_marks_reminder_sent(self, reminder_at, device_adapter, monkeypatch):
        handler: NotificationHandler = device_adapter._handler
        monkeypatch.setattr(lifecycle_sync_service, "notification_handler", handler)
        lifecycle_sync_service.initialize_notifications()
        reminder = await reminder_at(NOW + timedelta(hours=1))

        await handler.present(
            message_templates.upcoming_reminder(task_id=reminder.task_id, task_title="Task", reminder_id=reminder.id)
        )

        assert await _is_sent(reminder.task_id)
