"""Logfire setup and structured logging helpers.

Modules log through ``logging.getLogger(__name__)`` with ``extra=`` fields;
Logfire captures those records and the service spans opened with ``span``.
"""

import logging

import logfire
from fastapi import FastAPI

from src.core.config import settings


logger = logging.getLogger(__name__)


def configure_logfire() -> None:
    """Configure Logfire; nothing is exported unless a token is set."""
    logfire.configure(
        token=settings.logfire_token,
        service_name="remindersync",
        service_version="0.1.0",
        environment=settings.service_environment,
        send_to_logfire="if-token-present",
    )
    logger.info("Logfire configured", extra={"environment": settings.service_environment})


def instrument_fastapi(app: FastAPI) -> None:
    logfire.instrument_fastapi(app)
    logger.info("FastAPI instrumentation configured")


def span(name: str) -> logfire.LogfireSpan:
    """Open a span named ``<service module>.<function>`` around a service call."""
    return logfire.span(name)


def log_with_user_context(
    target: logging.Logger,
    level: str,
    message: str,
    user_id: str | None = None,
    **extra: object,
) -> None:
    """Log ``message`` at ``level`` with the user id and any extra fields attached.

    Args:
        target: Logger of the calling module
        level: "debug", "info", "warning", "error" or "critical"
        message: Log message
        user_id: Owner of the reminders being processed
        **extra: Additional context fields (task_id, reminder_id, counts)
    """
    context = {"user_id": user_id, **extra} if user_id else extra
    getattr(target, level.lower())(message, extra=context)
