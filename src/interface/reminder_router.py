"""HTTP surface for the task layer and the host app to drive reminder sync."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.core import message_templates
from src.core.errors import DeviceNotificationError, DeviceNotificationReason
from src.domain.task import Task
from src.interface import device_notifications
from src.interface.notification_handler import notification_handler
from src.models.service_models import ReconcileOutcome, SyncResult
from src.services import lifecycle_sync_service, reconciliation_service


router = APIRouter(prefix="/reminders", tags=["reminders"])
logger = logging.getLogger(__name__)


class TaskChange(BaseModel):
    """A task as saved, with its previous version when it was edited."""

    task: Task
    previous_task: Task | None = None


class NotificationTap(BaseModel):
    """Payload of a tapped notification."""

    data: dict[str, Any] = Field(default_factory=dict)


def _require_matching_task(task_id: str, task: Task) -> None:
    if task.id != task_id:
        raise HTTPException(status_code=400, detail="Task ID in path does not match request body")


@router.post("/sync/{user_id}")
async def sync_user(user_id: str) -> SyncResult:
    """Run the launch/foreground resync for a user."""
    return await lifecycle_sync_service.on_app_foreground_or_launch(user_id)


@router.post("/tasks/{task_id}/reconcile")
async def reconcile_task(task_id: str, change: TaskChange) -> ReconcileOutcome:
    """Reconcile a task's reminder after the task was created or edited."""
    _require_matching_task(task_id, change.task)
    if change.previous_task is not None:
        _require_matching_task(task_id, change.previous_task)
    return await reconciliation_service.on_task_reminder_relevant_change(change.task, change.previous_task)


@router.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str, task: Task) -> ReconcileOutcome:
    """Drop a task's reminder once the task is marked done."""
    _require_matching_task(task_id, task)
    return await reconciliation_service.on_task_completed(task)


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str) -> ReconcileOutcome:
    """Drop a deleted task's reminder."""
    return await reconciliation_service.on_task_deleted(task_id)


@router.post("/notifications/tap")
async def tap_notification(tap: NotificationTap) -> dict[str, str | None]:
    """Route a tapped notification to its task details page."""
    task_id = await notification_handler.handle_tap(tap.data)
    return {"task_id": task_id}


@router.get("/notifications/scheduled")
async def list_scheduled_notifications() -> dict[str, Any]:
    """Currently armed reminder notifications and the reminder -> handle map."""
    adapter = device_notifications.device_adapter
    handles = adapter.list_scheduled()
    return {
        "count": len(handles),
        "handles": handles,
        "handle_map": await adapter.load_handle_map(),
    }


@router.post("/notifications/test")
async def send_test_notification() -> dict[str, str]:
    """Show a test notification right away."""
    try:
        await device_notifications.device_adapter.present_now(message_templates.diagnostic_notification())
    except DeviceNotificationError as e:
        logger.warning("Test notification failed", extra={"reason": e.reason.value, "error": str(e)})
        status_code = 403 if e.reason == DeviceNotificationReason.PERMISSION_DENIED else 503
        raise HTTPException(status_code=status_code, detail=str(e)) from e
    return {"status": "sent"}
