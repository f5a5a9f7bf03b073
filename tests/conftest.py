"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import pytest

from src.core import db_client
from src.core.config import Constants, settings
from src.domain.task import Task


TaskFactory = Callable[..., Awaitable[Task]]


@pytest.fixture
async def sqlite_db(tmp_path, monkeypatch) -> AsyncIterator[str]:
    """Point the store at a fresh SQLite file with the schema applied."""
    db_path = str(tmp_path / "remindersync.db")
    monkeypatch.setattr(settings, "sqlite_db_path", db_path)

    await db_client.init_db()
    yield db_path
    await db_client.close_connection()


@pytest.fixture
def task_factory(sqlite_db: str) -> TaskFactory:
    """Factory for creating tasks in the store.

    Usage:
        task = await task_factory(title="Pay rent", due_date="2030-03-10", reminder_type="1hour")
    """

    async def _create_task(**kwargs: Any) -> Task:
        task_data = {
            "user_id": kwargs.pop("user_id", "user-1"),
            "title": kwargs.pop("title", "Test task"),
            "status": kwargs.pop("status", "pending"),
            "reminder_type": kwargs.pop("reminder_type", "none"),
        }
        # Allow any other column to be set
        task_data.update(kwargs)
        record = await db_client.create_record(collection=Constants.TASKS_TABLE, data=task_data)
        return Task(**record)

    return _create_task
