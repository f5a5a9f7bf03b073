"""SQLite schema management (code-first approach)."""

import logging

from src.core import db_client
from src.core.config import Constants


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    Constants.TASKS_TABLE,
    Constants.REMINDERS_TABLE,
]


# Tasks are owned by the task CRUD layer; the reminder core only reads them to
# scope reminders by user and to compose notification text.
_TABLE_DDL = {
    Constants.TASKS_TABLE: f"""
        CREATE TABLE IF NOT EXISTS {Constants.TASKS_TABLE} (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            due_date TEXT,
            due_time TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            reminder_type TEXT NOT NULL DEFAULT 'none',
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    Constants.REMINDERS_TABLE: f"""
        CREATE TABLE IF NOT EXISTS {Constants.REMINDERS_TABLE} (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id INTEGER NOT NULL,
            reminder_type TEXT NOT NULL,
            reminder_time TEXT NOT NULL,
            is_sent INTEGER NOT NULL DEFAULT 0,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
}

_INDEX_DDL = [
    f"CREATE INDEX IF NOT EXISTS idx_tasks_user ON {Constants.TASKS_TABLE} (user_id)",
    # At most one reminder per task
    f"CREATE UNIQUE INDEX IF NOT EXISTS idx_reminders_task ON {Constants.REMINDERS_TABLE} (task_id)",
    f"CREATE INDEX IF NOT EXISTS idx_reminders_pending ON {Constants.REMINDERS_TABLE} (is_sent, reminder_time)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create tables and indexes if they do not exist."""
    conn = await db_client.get_connection(db_path=db_path)

    for collection in COLLECTIONS:
        await conn.execute(_TABLE_DDL[collection])
        logger.info("Ensured table", extra={"collection": collection})

    for statement in _INDEX_DDL:
        await conn.execute(statement)

    await conn.commit()
    logger.info("Schema initialized", extra={"collections": COLLECTIONS})
