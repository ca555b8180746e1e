"""Dual-table writer: ``odds`` is upserted, ``open_odds`` is insert-if-absent."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import aiosqlite
import structlog

from sharp_odds.db.models import Table
from sharp_odds.db.repository import Repository
from sharp_odds.ingest.models import IdentityKey, OddsRecord

log = structlog.get_logger()

WriteFn = Callable[[list[dict[str, Any]]], Awaitable[int]]


@dataclass
class TableWriteStats:
    table: str
    attempted: int = 0
    written: int = 0
    already_present: int = 0
    failed: int = 0
    failed_keys: list[IdentityKey] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        """Rows that are in the table afterwards, whether written now or before."""
        return self.written + self.already_present

    def absorb(self, other: TableWriteStats) -> None:
        self.attempted += other.attempted
        self.written += other.written
        self.already_present += other.already_present
        self.failed += other.failed
        self.failed_keys.extend(other.failed_keys)


@dataclass
class BatchWriteResult:
    odds: TableWriteStats
    open_odds: TableWriteStats


class DualTableWriter:
    """Writes a batch to both odds tables, isolating failures per chunk.

    Each chunk goes to the database as one statement. If the database rejects
    it, the chunk is rolled back and replayed record by record so one bad row
    costs exactly one row. The two tables are attempted independently.
    """

    def __init__(
        self,
        repo: Repository,
        chunk_size: int = 100,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo = repo
        self._chunk_size = max(1, chunk_size)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def write_batch(self, batch: list[OddsRecord]) -> BatchWriteResult:
        written_at = self._clock()
        keys: list[IdentityKey] = []
        rows: list[dict[str, Any]] = []
        unwritable: list[IdentityKey] = []
        for record in batch:
            try:
                rows.append(record.to_row(written_at))
            except ValueError:
                unwritable.append(record.identity_key)
                log.error("odds_record_unwritable", key=str(record.identity_key))
                continue
            keys.append(record.identity_key)

        odds = await self._write_table(
            Table.ODDS, self._repo.upsert_current_odds, keys, rows
        )
        open_odds = await self._write_table(
            Table.OPEN_ODDS, self._repo.insert_opening_odds, keys, rows
        )
        for stats in (odds, open_odds):
            stats.attempted += len(unwritable)
            stats.failed += len(unwritable)
            stats.failed_keys.extend(unwritable)

        log.info(
            "batch_written",
            records=len(batch),
            odds_written=odds.written,
            odds_failed=odds.failed,
            open_odds_written=open_odds.written,
            open_odds_present=open_odds.already_present,
            open_odds_failed=open_odds.failed,
        )
        return BatchWriteResult(odds=odds, open_odds=open_odds)

    # ── Internal ────────────────────────────────────────────────────

    async def _write_table(
        self,
        table: Table,
        write: WriteFn,
        keys: list[IdentityKey],
        rows: list[dict[str, Any]],
    ) -> TableWriteStats:
        stats = TableWriteStats(table=table.value, attempted=len(rows))
        for start in range(0, len(rows), self._chunk_size):
            chunk_rows = rows[start : start + self._chunk_size]
            chunk_keys = keys[start : start + self._chunk_size]
            try:
                changed = await write(chunk_rows)
            except aiosqlite.Error as exc:
                log.warning(
                    "write_chunk_failed",
                    table=table.value,
                    size=len(chunk_rows),
                    error=str(exc),
                )
                await self._write_singly(table, write, chunk_keys, chunk_rows, stats)
                continue
            stats.written += changed
            stats.already_present += len(chunk_rows) - changed
        return stats

    async def _write_singly(
        self,
        table: Table,
        write: WriteFn,
        keys: list[IdentityKey],
        rows: list[dict[str, Any]],
        stats: TableWriteStats,
    ) -> None:
        for key, row in zip(keys, rows):
            try:
                changed = await write([row])
            except aiosqlite.Error as exc:
                stats.failed += 1
                stats.failed_keys.append(key)
                log.error(
                    "odds_record_write_failed",
                    table=table.value,
                    key=str(key),
                    error=str(exc),
                )
                continue
            stats.written += changed
            stats.already_present += 1 - changed
