"""Pytest configuration and fixtures for unit tests."""

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.core.redis_client import RedisClient
from src.core.scheduler import create_scheduler
from src.domain.reminder import NotificationContent
from src.interface import device_notifications
from src.interface.device_notifications import DeviceNotificationAdapter, HandleMap
from src.interface.notification_handler import NotificationHandler


@pytest.fixture
def presented() -> list[NotificationContent]:
    """Notifications shown by the handler, in order."""
    return []


@pytest.fixture
def handler(presented: list[NotificationContent]) -> NotificationHandler:
    """A fresh notification handler that records instead of displaying."""

    async def _record(content: NotificationContent) -> None:
        presented.append(content)

    notification_handler = NotificationHandler()
    notification_handler.initialize(presenter=_record, permission_granted=True)
    return notification_handler


@pytest.fixture
def job_scheduler() -> AsyncIOScheduler:
    """A scheduler that is never started, so armed jobs stay pending and inspectable."""
    return create_scheduler()


@pytest.fixture
def offline_redis() -> RedisClient:
    """Redis client with Redis disabled, forcing the in-memory fallbacks."""
    client = RedisClient()
    client._enabled = False
    client._client = None
    return client


@pytest.fixture
def handle_map(offline_redis: RedisClient) -> HandleMap:
    return HandleMap(store=offline_redis)


@pytest.fixture
def device_adapter(
    monkeypatch,
    job_scheduler: AsyncIOScheduler,
    handler: NotificationHandler,
    handle_map: HandleMap,
) -> DeviceNotificationAdapter:
    """Device adapter wired to test doubles and installed as the global adapter."""
    adapter = DeviceNotificationAdapter(job_scheduler=job_scheduler, handler=handler, handle_map=handle_map)
    monkeypatch.setattr(device_notifications, "device_adapter", adapter)
    return adapter
