"""remindersync - reminder scheduling core for a to-do app."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core.db_client import init_db
from src.core.logging import configure_logfire, instrument_fastapi
from src.core.redis_client import redis_client
from src.core.scheduler import scheduler, start_scheduler, stop_scheduler
from src.interface import device_notifications
from src.interface.notification_handler import notification_handler
from src.interface.reminder_router import router as reminder_router
from src.services.lifecycle_sync_service import initialize_notifications


logger = logging.getLogger(__name__)


async def check_redis_connectivity() -> None:
    """Verify Redis connectivity (optional service).

    Only checks if Redis is configured. Logs warning if unavailable but doesn't fail;
    the handle map then lives in process memory.
    """
    if not redis_client.is_available:
        logger.info("startup_validation", extra={"service": "redis", "status": "disabled"})
        return

    try:
        result = await redis_client.ping()
        if result:
            logger.info("startup_validation", extra={"service": "redis", "status": "ok"})
        else:
            logger.warning("startup_validation", extra={"service": "redis", "status": "unavailable"})
    except Exception as e:
        logger.warning("startup_validation", extra={"service": "redis", "status": "unavailable", "error": str(e)})


async def validate_startup_configuration() -> None:
    """Check optional services and open the store, exiting if the store is unusable."""
    logger.info("startup_validation_begin")

    await check_redis_connectivity()

    try:
        await init_db()
    except Exception as e:
        logger.error("startup_validation_failed", extra={"service": "sqlite", "error": str(e)})
        print(f"\n❌ Startup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger.info("startup_validation_complete", extra={"status": "ok"})


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so validation logs are captured
    configure_logfire()

    await validate_startup_configuration()
    logger.info("Database initialized")

    initialize_notifications()
    start_scheduler()
    yield
    # Shutdown
    stop_scheduler()
    await redis_client.close()


app = FastAPI(
    title="remindersync",
    description="Reminder scheduling and local notifications for to-do tasks",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(reminder_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/notifications")
async def notifications_health_check() -> JSONResponse:
    """Notification scheduling health: scheduler state, armed jobs and handle map."""
    adapter = device_notifications.device_adapter
    handle_map = await adapter.load_handle_map()

    if not scheduler.running or not notification_handler.is_initialized:
        overall_status = "critical"
    elif not notification_handler.permission_granted:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return JSONResponse(
        content={
            "status": overall_status,
            "scheduler_running": scheduler.running,
            "handler_initialized": notification_handler.is_initialized,
            "permission_granted": notification_handler.permission_granted,
            "scheduled_notifications": len(adapter.list_scheduled()),
            "handle_map_size": len(handle_map),
            "redis": redis_client.get_health_status(),
        },
        status_code=200 if overall_status == "healthy" else 503,
    )
