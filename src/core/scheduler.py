"""Scheduler that fires local reminder notifications."""

import logging

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.core.config import Constants


logger = logging.getLogger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    """Build a scheduler with a job store reserved for reminder notifications.

    Keeping reminders in their own store lets a full resync drop every
    reminder job without touching anything else scheduled in the process.
    """
    return AsyncIOScheduler(
        jobstores={
            "default": MemoryJobStore(),
            Constants.REMINDER_JOBSTORE: MemoryJobStore(),
        },
        job_defaults={"coalesce": True, "max_instances": 1},
    )


# Global scheduler instance
scheduler = create_scheduler()


def start_scheduler() -> None:
    """Start the scheduler.

    This should be called during FastAPI app startup.
    """
    if scheduler.running:
        logger.debug("Scheduler already running")
        return
    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    if not scheduler.running:
        return
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")
