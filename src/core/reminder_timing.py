"""Reminder fire-time computation.

Due dates are entered in the user's local time, so every datetime here is naive
local time. Nothing in this module performs I/O.
"""

import logging
from datetime import date, datetime, time, timedelta

from src.core.config import Constants
from src.domain.reminder import ReminderType


logger = logging.getLogger(__name__)


REMINDER_OFFSETS: dict[ReminderType, timedelta] = {
    ReminderType.AT_TIME: timedelta(0),
    ReminderType.FIVE_MIN_BEFORE: timedelta(minutes=5),
    ReminderType.FIFTEEN_MIN_BEFORE: timedelta(minutes=15),
    ReminderType.THIRTY_MIN_BEFORE: timedelta(minutes=30),
    ReminderType.ONE_HOUR_BEFORE: timedelta(hours=1),
    ReminderType.ONE_DAY_BEFORE: timedelta(days=1),
}

DEFAULT_DUE_TIME = time(Constants.DEFAULT_DUE_HOUR, Constants.DEFAULT_DUE_MINUTE)


def parse_due_date(value: date | str | None) -> date | None:
    """Parse a due date, returning None when it is missing or malformed."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.debug("Unparseable due date", extra={"due_date": value})
        return None


def parse_due_time(value: time | str | None) -> time | None:
    """Parse an HH:MM[:SS] due time, returning None when missing or malformed."""
    if value is None:
        return None
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)

    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
        second = int(float(parts[2])) if len(parts) == 3 else 0  # noqa: PLR2004
        return time(hour, minute, second)
    except ValueError:
        logger.debug("Unparseable due time", extra={"due_time": value})
        return None


def compute_reminder_time(
    due_date: date | str | None,
    due_time: time | str | None,
    reminder_type: ReminderType | str,
) -> datetime | None:
    """Compute when a task reminder should fire.

    The anchor is the due date at the due time, or at 09:00 when the task has
    no due time. The reminder type's offset is subtracted from the anchor.
    A result in the past is still returned; callers decide what to do with it.

    Args:
        due_date: Calendar date the task is due
        due_time: Optional clock time the task is due
        reminder_type: Offset policy (stored value or task-form choice)

    Returns:
        Naive local datetime, or None when no reminder should exist (type
        ``none``, missing/malformed due date, or malformed due time)

    Raises:
        ValueError: If reminder_type is not a known policy
    """
    policy = ReminderType.from_choice(reminder_type)
    if policy is ReminderType.NONE:
        return None

    anchor_date = parse_due_date(due_date)
    if anchor_date is None:
        return None

    if due_time is None or (isinstance(due_time, str) and not due_time.strip()):
        anchor_time = DEFAULT_DUE_TIME
    else:
        anchor_time = parse_due_time(due_time)
        if anchor_time is None:
            return None

    anchor = datetime.combine(anchor_date, anchor_time)
    return anchor - REMINDER_OFFSETS[policy]


def format_timestamp(value: datetime) -> str:
    """Render a datetime in the stored form: local, second precision, no offset.

    A fixed width keeps lexical ordering in store filters chronological.
    """
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat(timespec="seconds")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored reminder timestamp back into a naive local datetime."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed
