from src.services import (
    lifecycle_sync_service,
    reconciliation_service,
    reminder_store,
)


__all__ = [
    "lifecycle_sync_service",
    "reconciliation_service",
    "reminder_store",
]
