"""SQLite schema management (code-first approach)."""

import logging

from src.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    "tasks",
]


TABLE_SCHEMAS: dict[str, str] = {
    "tasks": """CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
        updated TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
        owner_id TEXT NOT NULL,
        title TEXT NOT NULL CHECK (length(title) > 0),
        description TEXT,
        due_date TEXT,
        start_time TEXT,
        end_time TEXT,
        is_recurring INTEGER NOT NULL DEFAULT 0,
        recurrence_days TEXT NOT NULL DEFAULT '[]',
        recurrence_start_date TEXT,
        recurrence_end_date TEXT,
        generated_through TEXT,
        series_id TEXT,
        priority TEXT NOT NULL DEFAULT 'medium'
            CHECK (priority IN ('low', 'medium', 'high')),
        status TEXT NOT NULL DEFAULT 'todo'
            CHECK (status IN ('todo', 'in_progress', 'done')),
        completed_at TEXT,
        CHECK (end_time IS NULL OR start_time IS NULL OR end_time > start_time),
        CHECK (is_recurring = 0 OR recurrence_days != '[]')
    )""",
}


# Occurrences of one series never share a due date; the template has a NULL
# due_date and is therefore outside the unique constraint.
TABLE_INDEXES: dict[str, list[str]] = {
    "tasks": [
        "CREATE INDEX IF NOT EXISTS idx_tasks_owner_due ON tasks (owner_id, due_date)",
        "CREATE INDEX IF NOT EXISTS idx_tasks_series ON tasks (series_id) WHERE series_id IS NOT NULL",
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_series_due ON tasks (series_id, due_date) "
        "WHERE series_id IS NOT NULL AND due_date IS NOT NULL",
    ],
}


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if they do not exist yet."""
    conn = await db_client.get_connection(db_path=db_path)

    for collection in COLLECTIONS:
        await conn.execute(TABLE_SCHEMAS[collection])
        for index_sql in TABLE_INDEXES.get(collection, []):
            await conn.execute(index_sql)

    await conn.commit()
    logger.info("Database schema initialized", extra={"collections": COLLECTIONS})
