"""Ingestion pipeline: fetch -> normalize -> dedupe/batch -> dual-table write."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import aiosqlite
import structlog

from sharp_odds.api.odds_client import DateWindow, FetchReport, SportsGameOddsClient
from sharp_odds.config import Settings
from sharp_odds.db.models import Table
from sharp_odds.db.repository import Repository
from sharp_odds.ingest.batcher import DuplicateNote, OddsBatcher
from sharp_odds.ingest.models import OddsRecord, format_ts
from sharp_odds.ingest.normalizer import DropReason, OddsNormalizer
from sharp_odds.ingest.writer import DualTableWriter, TableWriteStats

log = structlog.get_logger()


@dataclass
class PipelineResult:
    """Everything one invocation did. Never shared between invocations."""

    league: str
    pages_fetched: int = 0
    events_seen: int = 0
    events_skipped_started: int = 0
    records_normalized: int = 0
    dropped: Counter[str] = field(default_factory=Counter)
    duplicate_notes: list[DuplicateNote] = field(default_factory=list)
    odds: TableWriteStats = field(default_factory=lambda: TableWriteStats(Table.ODDS.value))
    open_odds: TableWriteStats = field(
        default_factory=lambda: TableWriteStats(Table.OPEN_ODDS.value)
    )
    rate_limited: bool = False
    truncated: bool = False
    resume_cursor: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def records_dropped(self) -> int:
        return sum(self.dropped.values())

    def summary(self) -> dict[str, Any]:
        return {
            "league": self.league,
            "pages_fetched": self.pages_fetched,
            "events_seen": self.events_seen,
            "events_skipped_started": self.events_skipped_started,
            "records_normalized": self.records_normalized,
            "records_attempted_odds": self.odds.attempted,
            "records_written_odds": self.odds.written,
            "records_failed_odds": self.odds.failed,
            "records_attempted_open_odds": self.open_odds.attempted,
            "records_written_open_odds": self.open_odds.written,
            "records_present_open_odds": self.open_odds.already_present,
            "records_failed_open_odds": self.open_odds.failed,
            "records_dropped": self.records_dropped,
            "dropped_by_reason": dict(self.dropped),
            "duplicate_keys": [str(n.key) for n in self.duplicate_notes],
            "failed_keys": sorted(
                {str(k) for k in self.odds.failed_keys + self.open_odds.failed_keys}
            ),
            "rate_limited": self.rate_limited,
            "truncated": self.truncated,
            "resume_cursor": self.resume_cursor,
            "warnings": list(self.warnings),
        }


class IngestPipeline:
    """Callable unit behind the scheduler, the CLI and any admin trigger.

    Each page is normalized, batched and written before the next one is
    requested. Separate leagues may run concurrently on one instance: all
    per-run state lives in ``run``.
    """

    def __init__(
        self,
        settings: Settings,
        client: SportsGameOddsClient,
        repo: Repository,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._repo = repo
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._writer = DualTableWriter(
            repo, chunk_size=settings.write_chunk_size, clock=self._clock
        )

    async def run(
        self,
        league: str,
        window: DateWindow | None = None,
        cursor: str | None = None,
    ) -> PipelineResult:
        started_at = self._clock()
        window = window or DateWindow.upcoming(
            self._settings.lookahead_days, today=started_at.date()
        )
        result = PipelineResult(league=league)
        report = FetchReport()
        normalizer = OddsNormalizer(
            league,
            bookmakers=self._settings.bookmakers,
            started_buffer=timedelta(minutes=self._settings.started_game_buffer_minutes),
            clock=self._clock,
        )
        batcher = OddsBatcher(
            batch_size=self._settings.batch_size,
            known_ceilings=self._settings.known_row_ceilings,
            clock=self._clock,
        )

        with structlog.contextvars.bound_contextvars(league=league):
            log.info(
                "ingest_start",
                window_start=window.start.isoformat(),
                window_end=window.end.isoformat(),
                cursor=cursor,
            )
            async for page in self._client.iter_event_pages(league, window, report, cursor):
                await self._process_page(page.events, normalizer, batcher, result)

            result.pages_fetched = report.pages
            result.rate_limited = report.rate_limited
            result.truncated = report.truncated
            result.resume_cursor = report.last_cursor if report.truncated else None
            result.warnings.extend(report.warnings)

            await self._record_run(result, started_at)
            log.info(
                "ingest_complete",
                pages=result.pages_fetched,
                events=result.events_seen,
                normalized=result.records_normalized,
                odds_written=result.odds.written,
                odds_failed=result.odds.failed,
                open_odds_written=result.open_odds.written,
                open_odds_failed=result.open_odds.failed,
                dropped=dict(result.dropped),
                truncated=result.truncated,
                warnings=len(result.warnings),
            )
        return result

    # ── Internal ────────────────────────────────────────────────────

    async def _process_page(
        self,
        events: list[dict[str, Any]],
        normalizer: OddsNormalizer,
        batcher: OddsBatcher,
        result: PipelineResult,
    ) -> None:
        records: list[OddsRecord] = []
        for raw in events:
            result.events_seen += 1
            normalized = normalizer.normalize_event(raw)
            result.dropped.update(normalized.dropped)
            if normalized.skipped_started:
                result.events_skipped_started += 1
                continue
            records.extend(normalized.records)
        result.records_normalized += len(records)

        plan = batcher.plan(records)
        result.duplicate_notes.extend(plan.duplicates)
        if plan.duplicates:
            result.dropped[DropReason.DUPLICATE.value] += len(plan.duplicates)
        result.warnings.extend(plan.warnings)

        touched: set[str] = set()
        for batch in plan.batches:
            written = await self._writer.write_batch(batch)
            result.odds.absorb(written.odds)
            result.open_odds.absorb(written.open_odds)
            touched.update(r.event_id for r in batch)

        await self._check_row_ceilings(touched, result)

    async def _check_row_ceilings(self, event_ids: set[str], result: PipelineResult) -> None:
        ceilings = set(self._settings.known_row_ceilings)
        if not ceilings or not event_ids:
            return
        counts = await self._repo.count_rows_by_event(Table.ODDS, event_ids)
        for event_id, count in sorted(counts.items()):
            if count in ceilings:
                result.warnings.append(
                    f"event {event_id}: odds table holds exactly {count} rows, "
                    f"a known ceiling; verify nothing is capping writes"
                )
                log.warning("row_ceiling_reached", event_id=event_id, rows=count)

    async def _record_run(self, result: PipelineResult, started_at: datetime) -> None:
        try:
            await self._repo.record_ingest_run(
                result.league,
                format_ts(started_at),
                format_ts(self._clock()),
                result.summary(),
            )
        except aiosqlite.Error as exc:
            result.warnings.append(f"could not record ingest run: {exc}")
            log.error("ingest_run_record_failed", error=str(exc))
