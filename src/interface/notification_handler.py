"""Process-wide local notification handler.

The host registers one handler per process: how delivered notifications are
shown, where a tapped notification navigates, and whether notifications are
permitted at all. Registration happens once; later calls to initialize() keep
the first registration so notifications are never handled twice.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from src.core.config import Constants
from src.domain.reminder import NotificationContent


logger = logging.getLogger(__name__)

Presenter = Callable[[NotificationContent], Awaitable[None]]
Navigator = Callable[[str], Awaitable[None]]
DeliveryListener = Callable[[NotificationContent], Awaitable[None]]


async def log_presenter(content: NotificationContent) -> None:
    """Default presenter: record the notification in the application log."""
    logger.info(
        "Notification presented",
        extra={"title": content.title, "body": content.body, "data": content.data()},
    )


async def log_navigator(task_id: str) -> None:
    """Default navigator: record the route a tap would open."""
    logger.info("Notification tapped", extra={"route": Constants.TASK_DETAILS_ROUTE.format(task_id=task_id)})


class NotificationHandler:
    """Presents notifications, routes taps and fans out delivery events."""

    def __init__(self) -> None:
        """Initialize an unregistered handler."""
        self._initialized = False
        self._presenter: Presenter = log_presenter
        self._navigator: Navigator = log_navigator
        self._delivery_listeners: list[DeliveryListener] = []
        self.permission_granted = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(
        self,
        *,
        presenter: Presenter | None = None,
        navigator: Navigator | None = None,
        permission_granted: bool = True,
    ) -> bool:
        """Register the handler once.

        Args:
            presenter: Coroutine that shows a notification to the user
            navigator: Coroutine that opens the task a tapped notification refers to
            permission_granted: Whether the host allows local notifications

        Returns:
            Whether notifications can be scheduled
        """
        if self._initialized:
            logger.debug("Notification handler already initialized")
            return self.permission_granted

        if presenter is not None:
            self._presenter = presenter
        if navigator is not None:
            self._navigator = navigator
        self.permission_granted = permission_granted
        self._initialized = True

        if not permission_granted:
            logger.warning("Notification permission not granted; reminders will stay unscheduled")
        else:
            logger.info("Notification handler initialized")
        return permission_granted

    def add_delivery_listener(self, listener: DeliveryListener) -> None:
        """Register a coroutine called after each notification is presented."""
        if listener not in self._delivery_listeners:
            self._delivery_listeners.append(listener)

    async def present(self, content: NotificationContent) -> None:
        """Show a notification, then notify delivery listeners.

        Presenter failures propagate; listener failures are logged so one
        listener cannot undo a delivery the user already saw.
        """
        await self._presenter(content)

        for listener in self._delivery_listeners:
            try:
                await listener(content)
            except Exception:
                logger.exception("Delivery listener failed", extra={"data": content.data()})

    async def handle_tap(self, data: dict[str, Any]) -> str | None:
        """Route a tapped notification to its task.

        Args:
            data: Payload attached to the notification

        Returns:
            The task id navigated to, or None when the payload names no task
        """
        task_id = data.get("task_id")
        if not task_id:
            logger.debug("Tapped notification carries no task", extra={"data": data})
            return None

        task_id = str(task_id)
        await self._navigator(task_id)
        return task_id


# Global handler instance
notification_handler = NotificationHandler()
