"""Typed errors and error classification for the reminder core."""

from enum import Enum, StrEnum
from typing import Literal


class ReminderError(Exception):
    """Base class for reminder scheduling failures."""


class ReminderStoreError(ReminderError):
    """The relational store could not complete a reminder read or write."""


class DeviceNotificationReason(StrEnum):
    """Why a local notification could not be armed or shown."""

    PERMISSION_DENIED = "permission_denied"
    PAST_FIRE_TIME = "past_fire_time"
    SCHEDULER_ERROR = "scheduler_error"
    DELIVERY_FAILED = "delivery_failed"


class DeviceNotificationError(ReminderError):
    """The local notification scheduler refused or failed an operation."""

    def __init__(self, message: str, *, reason: DeviceNotificationReason) -> None:
        super().__init__(message)
        self.reason = reason


class ErrorCategory(Enum):
    """Categories of errors that can occur while syncing reminders."""

    STORE_UNAVAILABLE = "store_unavailable"
    PERMISSION_DENIED = "permission_denied"
    PAST_FIRE_TIME = "past_fire_time"
    SCHEDULER_FAILURE = "scheduler_failure"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


_NETWORK_PATTERNS: dict[Literal["phrases", "exception_types"], list[str] | set[str]] = {
    "phrases": [
        "connection",
        "timeout",
        "network",
        "unreachable",
        "database is locked",
    ],
    "exception_types": {"ConnectionError", "TimeoutError", "OperationalError"},
}

_DEVICE_CATEGORIES = {
    DeviceNotificationReason.PERMISSION_DENIED: ErrorCategory.PERMISSION_DENIED,
    DeviceNotificationReason.PAST_FIRE_TIME: ErrorCategory.PAST_FIRE_TIME,
    DeviceNotificationReason.SCHEDULER_ERROR: ErrorCategory.SCHEDULER_FAILURE,
    DeviceNotificationReason.DELIVERY_FAILED: ErrorCategory.SCHEDULER_FAILURE,
}


def _looks_like_network_error(exception: BaseException) -> bool:
    error_str = str(exception).lower()
    exception_type = type(exception).__name__
    return any(phrase in error_str for phrase in _NETWORK_PATTERNS["phrases"]) or (
        exception_type in _NETWORK_PATTERNS["exception_types"]
    )


def classify_sync_error(exception: BaseException) -> tuple[ErrorCategory, str]:
    """Classify a reminder sync failure and return an operator-facing message.

    Args:
        exception: The exception raised while reconciling or syncing

    Returns:
        Tuple of (ErrorCategory, message)
    """
    if isinstance(exception, DeviceNotificationError):
        category = _DEVICE_CATEGORIES.get(exception.reason, ErrorCategory.SCHEDULER_FAILURE)
        if category is ErrorCategory.PERMISSION_DENIED:
            return category, "Notification permission not granted; reminders stay persisted until it is."
        if category is ErrorCategory.PAST_FIRE_TIME:
            return category, "Reminder time already passed; the missed-reminder sweep will surface it."
        return category, "Local notification scheduler failed; will retry on next sync."

    cause = exception.__cause__ or exception
    if isinstance(exception, ReminderStoreError):
        if _looks_like_network_error(cause):
            return ErrorCategory.NETWORK_ERROR, "Reminder store unreachable; will retry on next trigger."
        return ErrorCategory.STORE_UNAVAILABLE, "Reminder store operation failed; will retry on next trigger."

    if _looks_like_network_error(exception):
        return ErrorCategory.NETWORK_ERROR, "Network error while syncing reminders."

    return ErrorCategory.UNKNOWN, "An unexpected error occurred while syncing reminders."
