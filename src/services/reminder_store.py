"""Persisted reminder records, scoped by task or by user.

Users own tasks and tasks own at most one reminder. User-scoped listings join
through the task table in two steps: the user's task ids, then the unsent
reminders for those ids.
"""

import logging
from collections.abc import Callable, Coroutine
from datetime import datetime, timedelta
from functools import wraps
from typing import Any, TypeVar

from src.core import db_client
from src.core.config import Constants, settings
from src.core.db_client import DatabaseError, RecordNotFoundError, sanitize_param
from src.core.errors import ReminderStoreError
from src.core.reminder_timing import format_timestamp
from src.domain.reminder import Reminder, ReminderType, ReminderWithTask


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Task ids per OR-group in a reminder filter
TASK_ID_CHUNK_SIZE = 50


def _store_operation(
    operation: str,
) -> Callable[[Callable[..., Coroutine[Any, Any, T]]], Callable[..., Coroutine[Any, Any, T]]]:
    """Translate database failures into ReminderStoreError."""

    def decorator(func: Callable[..., Coroutine[Any, Any, T]]) -> Callable[..., Coroutine[Any, Any, T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:  # noqa: ANN401
            try:
                return await func(*args, **kwargs)
            except (DatabaseError, RecordNotFoundError) as e:
                logger.error("reminder_store_failed", extra={"operation": operation, "error": str(e)})
                raise ReminderStoreError(f"Reminder store {operation} failed: {e}") from e

        return wrapper

    return decorator


def default_lookback() -> timedelta:
    """Window within which unsent past reminders are replayed."""
    return timedelta(hours=settings.missed_reminder_lookback_hours)


async def _rows_for_task(task_id: str) -> list[dict[str, Any]]:
    return await db_client.list_records(
        collection=Constants.REMINDERS_TABLE,
        filter_query=f'task_id = "{sanitize_param(task_id)}"',
        sort="id",
    )


@_store_operation("find_by_task")
async def find_by_task(task_id: str) -> Reminder | None:
    """Return the reminder for a task, or None."""
    rows = await _rows_for_task(task_id)
    if not rows:
        return None
    return Reminder(**rows[0])


@_store_operation("upsert")
async def upsert(task_id: str, reminder_type: ReminderType, reminder_time: datetime) -> Reminder:
    """Create or replace the single reminder of a task.

    An existing reminder is updated in place and becomes unsent again. Any
    extra rows left over for the same task are removed.
    """
    data = {
        "reminder_type": str(reminder_type),
        "reminder_time": format_timestamp(reminder_time),
        "is_sent": False,
    }
    rows = await _rows_for_task(task_id)

    if not rows:
        record = await db_client.create_record(
            collection=Constants.REMINDERS_TABLE,
            data={"task_id": task_id, **data},
        )
        logger.info("Created reminder", extra={"task_id": task_id, "reminder_id": record["id"]})
        return Reminder(**record)

    keep, *extras = rows
    for extra in extras:
        await db_client.delete_record(collection=Constants.REMINDERS_TABLE, record_id=extra["id"])
        logger.warning("Removed duplicate reminder", extra={"task_id": task_id, "reminder_id": extra["id"]})

    record = await db_client.update_record(collection=Constants.REMINDERS_TABLE, record_id=keep["id"], data=data)
    logger.info("Updated reminder", extra={"task_id": task_id, "reminder_id": record["id"]})
    return Reminder(**record)


@_store_operation("delete_by_task")
async def delete_by_task(task_id: str) -> list[str]:
    """Delete every reminder of a task and return the removed ids.

    Deleting a task without reminders is not an error.
    """
    removed: list[str] = []
    for row in await _rows_for_task(task_id):
        try:
            await db_client.delete_record(collection=Constants.REMINDERS_TABLE, record_id=row["id"])
        except RecordNotFoundError:
            continue
        removed.append(row["id"])

    if removed:
        logger.info("Deleted reminders", extra={"task_id": task_id, "reminder_ids": removed})
    return removed


@_store_operation("mark_sent")
async def mark_sent(reminder_id: str) -> None:
    """Flag a reminder as delivered. Repeating the call, or a missing reminder, is a no-op."""
    try:
        await db_client.update_record(
            collection=Constants.REMINDERS_TABLE,
            record_id=reminder_id,
            data={"is_sent": True},
        )
    except RecordNotFoundError:
        logger.debug("Reminder already gone, nothing to mark", extra={"reminder_id": reminder_id})
        return
    logger.info("Marked reminder sent", extra={"reminder_id": reminder_id})


async def _task_titles_for_user(user_id: str) -> dict[str, str]:
    tasks = await db_client.list_all_records(
        collection=Constants.TASKS_TABLE,
        filter_query=f'user_id = "{sanitize_param(user_id)}"',
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return {task["id"]: task["title"] for task in tasks}


async def _list_unsent_for_user(user_id: str, time_conditions: list[str]) -> list[ReminderWithTask]:
    titles = await _task_titles_for_user(user_id)
    if not titles:
        return []

    task_ids = list(titles)
    reminders: list[ReminderWithTask] = []
    for start in range(0, len(task_ids), TASK_ID_CHUNK_SIZE):
        chunk = task_ids[start : start + TASK_ID_CHUNK_SIZE]
        task_group = " || ".join(f'task_id = "{sanitize_param(task_id)}"' for task_id in chunk)
        filter_query = " && ".join([f"({task_group})", 'is_sent = "false"', *time_conditions])
        rows = await db_client.list_all_records(
            collection=Constants.REMINDERS_TABLE,
            filter_query=filter_query,
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )
        reminders.extend(ReminderWithTask(**row, task_title=titles[row["task_id"]]) for row in rows)

    return reminders


@_store_operation("list_active")
async def list_active(user_id: str, now: datetime) -> list[ReminderWithTask]:
    """Unsent reminders of a user that fire at or after now, soonest first."""
    reminders = await _list_unsent_for_user(user_id, [f'reminder_time >= "{format_timestamp(now)}"'])
    return sorted(reminders, key=lambda r: r.reminder_time)


@_store_operation("list_missed")
async def list_missed(user_id: str, now: datetime, lookback: timedelta | None = None) -> list[ReminderWithTask]:
    """Unsent reminders of a user that fired within the lookback window, newest first."""
    window_start = now - (lookback if lookback is not None else default_lookback())
    reminders = await _list_unsent_for_user(
        user_id,
        [
            f'reminder_time >= "{format_timestamp(window_start)}"',
            f'reminder_time <= "{format_timestamp(now)}"',
        ],
    )
    return sorted(reminders, key=lambda r: r.reminder_time, reverse=True)


@_store_operation("list_stale")
async def list_stale(user_id: str, now: datetime, lookback: timedelta | None = None) -> list[ReminderWithTask]:
    """Unsent reminders of a user older than the lookback window."""
    window_start = now - (lookback if lookback is not None else default_lookback())
    reminders = await _list_unsent_for_user(user_id, [f'reminder_time < "{format_timestamp(window_start)}"'])
    return sorted(reminders, key=lambda r: r.reminder_time)
