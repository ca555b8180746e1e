"""Data access layer for Sharp Odds."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Iterable

import aiosqlite
import structlog

from sharp_odds.db.models import IDENTITY_COLUMNS, ODDS_COLUMNS, Table
from sharp_odds.ingest.models import IdentityKey

log = structlog.get_logger()

_CONFLICT_TARGET = ", ".join(IDENTITY_COLUMNS)
_INSERT_COLUMNS = ", ".join(ODDS_COLUMNS)
_INSERT_VALUES = ", ".join(f":{c}" for c in ODDS_COLUMNS)

# created_at is absent on purpose: it keeps the first insert's value
_UPDATED_ON_CONFLICT = [
    c for c in ODDS_COLUMNS if c not in IDENTITY_COLUMNS and c != "created_at"
]

UPSERT_CURRENT_SQL = f"""
    INSERT INTO {Table.ODDS.value} ({_INSERT_COLUMNS})
    VALUES ({_INSERT_VALUES})
    ON CONFLICT ({_CONFLICT_TARGET}) DO UPDATE SET
        {", ".join(f"{c} = excluded.{c}" for c in _UPDATED_ON_CONFLICT)}
"""

INSERT_OPENING_SQL = f"""
    INSERT INTO {Table.OPEN_ODDS.value} ({_INSERT_COLUMNS})
    VALUES ({_INSERT_VALUES})
    ON CONFLICT ({_CONFLICT_TARGET}) DO NOTHING
"""


class Repository:
    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        # One connection is shared by every league task; a write and its
        # commit/rollback must not interleave with another task's write.
        self._write_lock = asyncio.Lock()

    # ── Odds writes ─────────────────────────────────────────────────

    async def upsert_current_odds(self, rows: list[dict[str, Any]]) -> int:
        """Insert-or-update rows in ``odds``. Returns rows changed.

        Raises the sqlite error (after rolling back every row of the call)
        if any row is rejected.
        """
        return await self._write_many(UPSERT_CURRENT_SQL, rows, Table.ODDS)

    async def insert_opening_odds(self, rows: list[dict[str, Any]]) -> int:
        """Insert-if-absent rows in ``open_odds``. Returns rows inserted;
        rows whose identity key already exists are left alone and not counted."""
        return await self._write_many(INSERT_OPENING_SQL, rows, Table.OPEN_ODDS)

    async def _write_many(
        self, sql: str, rows: list[dict[str, Any]], table: Table
    ) -> int:
        if not rows:
            return 0
        async with self._write_lock:
            try:
                cursor = await self._db.executemany(sql, rows)
                await self._db.commit()
            except aiosqlite.Error:
                await self._db.rollback()
                raise
        changed = cursor.rowcount  # type: ignore[union-attr]
        log.debug("odds_rows_written", table=table.value, changed=changed, total=len(rows))
        return changed

    # ── Odds reads ──────────────────────────────────────────────────

    async def get_odds_row(self, table: Table, key: IdentityKey) -> aiosqlite.Row | None:
        where = " AND ".join(f"{c} = ?" for c in IDENTITY_COLUMNS)
        sql = f"SELECT * FROM {table.value} WHERE {where}"
        cursor = await self._db.execute(sql, tuple(key))
        return await cursor.fetchone()

    async def count_rows(self, table: Table, event_id: str | None = None) -> int:
        if event_id is None:
            cursor = await self._db.execute(f"SELECT COUNT(*) AS cnt FROM {table.value}")
        else:
            cursor = await self._db.execute(
                f"SELECT COUNT(*) AS cnt FROM {table.value} WHERE event_id = ?",
                (event_id,),
            )
        row = await cursor.fetchone()
        return row["cnt"] if row else 0

    async def count_rows_by_event(
        self, table: Table, event_ids: Iterable[str]
    ) -> dict[str, int]:
        ids = sorted(set(event_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        sql = f"""
            SELECT event_id, COUNT(*) AS cnt FROM {table.value}
            WHERE event_id IN ({placeholders})
            GROUP BY event_id
        """
        cursor = await self._db.execute(sql, ids)
        rows = await cursor.fetchall()
        counts = {event_id: 0 for event_id in ids}
        counts.update({row["event_id"]: row["cnt"] for row in rows})
        return counts

    async def get_identity_keys(self, table: Table, event_id: str) -> set[IdentityKey]:
        sql = f"SELECT {_CONFLICT_TARGET} FROM {table.value} WHERE event_id = ?"
        cursor = await self._db.execute(sql, (event_id,))
        rows = await cursor.fetchall()
        return {IdentityKey(*(row[c] for c in IDENTITY_COLUMNS)) for row in rows}

    async def sample_event_ids(self, limit: int) -> list[str]:
        """Random sample of events present in either odds table."""
        sql = f"""
            SELECT event_id FROM (
                SELECT event_id FROM {Table.ODDS.value}
                UNION
                SELECT event_id FROM {Table.OPEN_ODDS.value}
            )
            ORDER BY RANDOM()
            LIMIT ?
        """
        cursor = await self._db.execute(sql, (limit,))
        rows = await cursor.fetchall()
        return [row["event_id"] for row in rows]

    async def get_opening_after_current(self, event_id: str) -> list[IdentityKey]:
        """Keys whose opening row is newer than the current row."""
        join = " AND ".join(f"o.{c} = c.{c}" for c in IDENTITY_COLUMNS)
        columns = ", ".join(f"o.{c} AS {c}" for c in IDENTITY_COLUMNS)
        sql = f"""
            SELECT {columns} FROM {Table.OPEN_ODDS.value} o
            INNER JOIN {Table.ODDS.value} c ON {join}
            WHERE o.event_id = ? AND o.fetched_at > c.fetched_at
        """
        cursor = await self._db.execute(sql, (event_id,))
        rows = await cursor.fetchall()
        return [IdentityKey(*(row[c] for c in IDENTITY_COLUMNS)) for row in rows]

    # ── Ingest runs ─────────────────────────────────────────────────

    async def record_ingest_run(
        self,
        league: str,
        started_at: str,
        finished_at: str,
        summary: dict[str, Any],
    ) -> None:
        sql = """
            INSERT INTO ingest_runs
                (league, started_at, finished_at, pages_fetched, records_normalized,
                 odds_written, open_odds_written, records_dropped, records_failed,
                 rate_limited, truncated, warnings_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            league,
            started_at,
            finished_at,
            summary["pages_fetched"],
            summary["records_normalized"],
            summary["records_written_odds"],
            summary["records_written_open_odds"],
            summary["records_dropped"],
            summary["records_failed_odds"] + summary["records_failed_open_odds"],
            int(summary["rate_limited"]),
            int(summary["truncated"]),
            json.dumps(summary["warnings"]) if summary["warnings"] else None,
        )
        async with self._write_lock:
            await self._db.execute(sql, params)
            await self._db.commit()

    async def get_recent_runs(
        self, limit: int = 20, league: str | None = None
    ) -> list[aiosqlite.Row]:
        if league:
            sql = """
                SELECT * FROM ingest_runs WHERE league = ?
                ORDER BY id DESC LIMIT ?
            """
            cursor = await self._db.execute(sql, (league, limit))
        else:
            sql = "SELECT * FROM ingest_runs ORDER BY id DESC LIMIT ?"
            cursor = await self._db.execute(sql, (limit,))
        return await cursor.fetchall()
