"""Pydantic models for service layer return types.

These models give callers of the reminder entry points a structured account of
what happened instead of raising, since reminder failures are self-healing.
"""

from enum import StrEnum

from pydantic import BaseModel, Field


class ReconcileAction(StrEnum):
    """What reconciling a task did."""

    SCHEDULED = "scheduled"  # Reminder persisted and notification armed
    PERSISTED_PAST = "persisted_past"  # Reminder persisted; fire time passed, left to the missed sweep
    UNCHANGED = "unchanged"  # Already converged
    REMOVED = "removed"  # No reminder should exist; any existing one deleted
    DEVICE_FAILED = "device_failed"  # Reminder persisted; notification could not be armed
    STORE_FAILED = "store_failed"  # Store unavailable; retried on next trigger


class ReconcileOutcome(BaseModel):
    """Result of reconciling one task's reminder."""

    task_id: str
    action: ReconcileAction
    reminder_id: str | None = None
    reminder_time: str | None = None
    handle: str | None = None
    removed_reminder_ids: list[str] = Field(default_factory=list)
    error: str | None = None


class MissedSweepResult(BaseModel):
    """Catch-up notifications sent for unsent reminders inside the lookback window."""

    found: int = 0
    replayed: int = 0
    failed: int = 0
    ok: bool = True
    error: str | None = None


class ExpirySweepResult(BaseModel):
    """Unsent reminders older than the lookback window, marked sent without notifying."""

    enabled: bool = False
    expired: int = 0
    ok: bool = True
    error: str | None = None


class RearmResult(BaseModel):
    """Notifications re-armed from the store's active reminders."""

    active: int = 0
    armed: int = 0
    skipped: int = 0
    failed: int = 0
    ok: bool = True
    error: str | None = None


class SyncResult(BaseModel):
    """Outcome of a launch/foreground sync for one user."""

    user_id: str
    missed: MissedSweepResult
    expiry: ExpirySweepResult
    rearm: RearmResult

    @property
    def ok(self) -> bool:
        return self.missed.ok and self.expiry.ok and self.rearm.ok
