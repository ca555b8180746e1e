"""Database initialization and migrations."""

from __future__ import annotations

import aiosqlite
import structlog

from sharp_odds.db.models import SCHEMA_SQL

log = structlog.get_logger()

BUSY_TIMEOUT_MS = 5000


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Open the odds database, apply the schema and return the connection.

    File databases run in WAL mode so the ops scripts can read while a
    fetch cycle is writing.
    """
    db = await aiosqlite.connect(db_path)
    db.row_factory = aiosqlite.Row
    await db.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
    if db_path != ":memory:":
        await db.execute("PRAGMA journal_mode = WAL")
    await db.executescript(SCHEMA_SQL)
    await db.commit()
    log.info("database_initialized", path=db_path)
    return db
