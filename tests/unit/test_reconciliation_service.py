"""Unit tests for per-task reminder reconciliation."""

from datetime import datetime, timedelta

import pytest

from src.core.errors import ReminderStoreError
from src.domain.reminder import ReminderType
from src.domain.task import TaskStatus
from src.interface.notification_handler import NotificationHandler
from src.models.service_models import ReconcileAction
from src.services import reconciliation_service, reminder_store
from src.services.lifecycle_sync_service import _mark_delivered


NOW = datetime(2030, 3, 10, 12, 0, 0)


@pytest.fixture
async def rent_task(task_factory):
    """Task due tomorrow at 14:00 with a reminder one hour before."""
    return await task_factory(title="Pay rent", due_date="2030-03-11", due_time="14:00", reminder_type="1hour")


@pytest.mark.unit
class TestReconcileTask:
    """Tests for reconcile_task."""

    async def test_new_task_persists_and_arms_reminder(self, rent_task, device_adapter):
        outcome = await reconciliation_service.reconcile_task(rent_task, now=NOW)

        assert outcome.action == ReconcileAction.SCHEDULED
        assert outcome.reminder_time == "2030-03-11T13:00:00"
        stored = await reminder_store.find_by_task(rent_task.id)
        assert stored is not None
        assert stored.id == outcome.reminder_id
        assert device_adapter.list_scheduled() == [outcome.handle]
        assert await device_adapter.get_handle(stored.id) == outcome.handle

    async def test_repeated_reconcile_is_noop(self, rent_task, device_adapter):
        first = await reconciliation_service.reconcile_task(rent_task, now=NOW)
        second = await reconciliation_service.reconcile_task(rent_task, now=NOW)

        assert second.action == ReconcileAction.UNCHANGED
        assert second.reminder_id == first.reminder_id
        assert second.handle == first.handle
        assert device_adapter.list_scheduled() == [first.handle]

    async def test_task_without_reminder_type_has_no_reminder(self, task_factory, device_adapter):
        task = await task_factory(due_date="2030-03-11", due_time="14:00", reminder_type="none")

        outcome = await reconciliation_service.reconcile_task(task, now=NOW)

        assert outcome.action == ReconcileAction.REMOVED
        assert await reminder_store.find_by_task(task.id) is None
        assert device_adapter.list_scheduled() == []

    async def test_task_without_due_date_has_no_reminder(self, task_factory, device_adapter):
        task = await task_factory(reminder_type="at_time")

        outcome = await reconciliation_service.reconcile_task(task, now=NOW)

        assert outcome.action == ReconcileAction.REMOVED
        assert device_adapter.list_scheduled() == []

    async def test_clearing_reminder_type_removes_reminder(self, rent_task, device_adapter):
        scheduled = await reconciliation_service.reconcile_task(rent_task, now=NOW)
        edited = rent_task.model_copy(update={"reminder_type": ReminderType.NONE})

        outcome = await reconciliation_service.reconcile_task(edited, rent_task, now=NOW)

        assert outcome.action == ReconcileAction.REMOVED
        assert outcome.removed_reminder_ids == [scheduled.reminder_id]
        assert await reminder_store.find_by_task(rent_task.id) is None
        assert device_adapter.list_scheduled() == []

    async def test_completed_task_has_no_reminder(self, rent_task, device_adapter):
        await reconciliation_service.reconcile_task(rent_task, now=NOW)
        completed = rent_task.model_copy(update={"status": TaskStatus.COMPLETED})

        outcome = await reconciliation_service.reconcile_task(completed, now=NOW)

        assert outcome.action == ReconcileAction.REMOVED
        assert await reminder_store.find_by_task(rent_task.id) is None
        assert device_adapter.list_scheduled() == []
        assert await device_adapter.load_handle_map() == {}

    async def test_rescheduling_replaces_old_reminder(self, rent_task, device_adapter):
        """Moving the due time drops the old reminder and notification before arming the new one."""
        old = await reconciliation_service.reconcile_task(rent_task, now=NOW)
        edited = rent_task.model_copy(update={"due_time": "16:00"})

        outcome = await reconciliation_service.reconcile_task(edited, rent_task, now=NOW)

        assert outcome.action == ReconcileAction.SCHEDULED
        assert outcome.reminder_time == "2030-03-11T15:00:00"
        assert outcome.removed_reminder_ids == [old.reminder_id]
        assert outcome.reminder_id != old.reminder_id
        assert device_adapter.list_scheduled() == [outcome.handle]
        assert await device_adapter.load_handle_map() == {outcome.reminder_id: outcome.handle}

    async def test_changed_inputs_without_previous_task_update_in_place(self, rent_task, device_adapter):
        old = await reconciliation_service.reconcile_task(rent_task, now=NOW)
        edited = rent_task.model_copy(update={"due_time": "16:00"})

        outcome = await reconciliation_service.reconcile_task(edited, now=NOW)

        assert outcome.action == ReconcileAction.SCHEDULED
        assert outcome.reminder_id == old.reminder_id
        assert outcome.reminder_time == "2030-03-11T15:00:00"
        assert device_adapter.list_scheduled() == [outcome.handle]

    async def test_title_change_rearms_notification(self, rent_task, device_adapter, job_scheduler):
        old = await reconciliation_service.reconcile_task(rent_task, now=NOW)
        renamed = rent_task.model_copy(update={"title": "Pay rent and bills"})

        outcome = await reconciliation_service.reconcile_task(renamed, rent_task, now=NOW)

        assert outcome.action == ReconcileAction.SCHEDULED
        assert outcome.reminder_id == old.reminder_id
        assert outcome.handle != old.handle
        job = job_scheduler.get_job(outcome.handle, jobstore="reminders")
        assert job.args[0].body == "[Pay rent and bills] is due soon"

    async def test_lost_notification_is_rearmed(self, rent_task, device_adapter):
        await reconciliation_service.reconcile_task(rent_task, now=NOW)
        await device_adapter.cancel_all()

        outcome = await reconciliation_service.reconcile_task(rent_task, now=NOW)

        assert outcome.action == ReconcileAction.SCHEDULED
        assert device_adapter.list_scheduled() == [outcome.handle]

    async def test_past_fire_time_is_persisted_but_not_armed(self, task_factory, device_adapter):
        task = await task_factory(due_date="2030-03-10", due_time="12:30", reminder_type="1hour")

        outcome = await reconciliation_service.reconcile_task(task, now=NOW)

        assert outcome.action == ReconcileAction.PERSISTED_PAST
        stored = await reminder_store.find_by_task(task.id)
        assert stored is not None
        assert stored.is_sent is False
        assert device_adapter.list_scheduled() == []

    async def test_sent_reminder_is_not_rearmed(self, rent_task, device_adapter):
        scheduled = await reconciliation_service.reconcile_task(rent_task, now=NOW)
        await reminder_store.mark_sent(scheduled.reminder_id)
        await device_adapter.cancel_all()

        outcome = await reconciliation_service.reconcile_task(rent_task, now=NOW)

        assert outcome.action == ReconcileAction.UNCHANGED
        assert device_adapter.list_scheduled() == []

    async def test_permission_denied_keeps_reminder_persisted(self, rent_task, device_adapter, monkeypatch):
        monkeypatch.setattr(device_adapter._handler, "permission_granted", False)

        outcome = await reconciliation_service.reconcile_task(rent_task, now=NOW)

        assert outcome.action == ReconcileAction.DEVICE_FAILED
        assert outcome.error is not None
        assert await reminder_store.find_by_task(rent_task.id) is not None
        assert device_adapter.list_scheduled() == []


@pytest.mark.unit
class TestEntryPoints:
    """Tests for the task lifecycle entry points."""

    @pytest.fixture
    async def upcoming_task(self, task_factory):
        due = datetime.now() + timedelta(days=3)
        return await task_factory(
            title="Renew passport",
            due_date=due.date().isoformat(),
            due_time="10:00",
            reminder_type="1day",
        )

    async def test_change_schedules_reminder(self, upcoming_task, device_adapter):
        outcome = await reconciliation_service.on_task_reminder_relevant_change(upcoming_task)

        assert outcome.action == ReconcileAction.SCHEDULED
        assert len(device_adapter.list_scheduled()) == 1

    async def test_completion_cancels_reminder(self, upcoming_task, device_adapter):
        await reconciliation_service.on_task_reminder_relevant_change(upcoming_task)

        outcome = await reconciliation_service.on_task_completed(upcoming_task)

        assert outcome.action == ReconcileAction.REMOVED
        assert await reminder_store.find_by_task(upcoming_task.id) is None
        assert device_adapter.list_scheduled() == []

    async def test_deletion_cancels_reminder(self, upcoming_task, device_adapter):
        scheduled = await reconciliation_service.on_task_reminder_relevant_change(upcoming_task)

        outcome = await reconciliation_service.on_task_deleted(upcoming_task.id)

        assert outcome.action == ReconcileAction.REMOVED
        assert outcome.removed_reminder_ids == [scheduled.reminder_id]
        assert device_adapter.list_scheduled() == []

    async def test_deleting_task_without_reminder(self, sqlite_db, device_adapter):
        outcome = await reconciliation_service.on_task_deleted("123")

        assert outcome.action == ReconcileAction.REMOVED
        assert outcome.removed_reminder_ids == []

    async def test_store_failure_is_reported_not_raised(self, upcoming_task, device_adapter, monkeypatch):
        async def _unavailable(task_id):
            raise ReminderStoreError("Reminder store find_by_task failed: database is locked")

        monkeypatch.setattr(reminder_store, "find_by_task", _unavailable)

        outcome = await reconciliation_service.on_task_reminder_relevant_change(upcoming_task)

        assert outcome.action == ReconcileAction.STORE_FAILED
        assert outcome.error is not None
        assert device_adapter.list_scheduled() == []

    async def test_store_failure_on_delete_is_reported(self, device_adapter, monkeypatch):
        async def _unavailable(task_id):
            raise ReminderStoreError("Reminder store delete_by_task failed")

        monkeypatch.setattr(reminder_store, "delete_by_task", _unavailable)

        outcome = await reconciliation_service.on_task_deleted("1")

        assert outcome.action == ReconcileAction.STORE_FAILED

    async def test_delivered_reminder_is_left_alone(self, upcoming_task, device_adapter, job_scheduler):
        """After the scheduled notification fires, reconciling again does not re-arm it."""
        handler: NotificationHandler = device_adapter._handler

        handler.add_delivery_listener(_mark_delivered)
        scheduled = await reconciliation_service.on_task_reminder_relevant_change(upcoming_task)
        job = job_scheduler.get_job(scheduled.handle, jobstore="reminders")
        await device_adapter.cancel(scheduled.handle)
        await job.func(*job.args)

        outcome = await reconciliation_service.on_task_reminder_relevant_change(upcoming_task)

        assert outcome.action == ReconcileAction.UNCHANGED
        assert device_adapter.list_scheduled() == []
