"""APScheduler-based ingestion scheduler."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from sharp_odds.config import Settings
from sharp_odds.ingest.pipeline import IngestPipeline, PipelineResult
from sharp_odds.ingest.reconcile import OddsReconciler, ReconciliationReport

log = structlog.get_logger()


class IngestPoller:
    def __init__(
        self,
        settings: Settings,
        pipeline: IngestPipeline,
        reconciler: OddsReconciler,
    ) -> None:
        self._settings = settings
        self._pipeline = pipeline
        self._reconciler = reconciler
        self._cycle_count = 0

    async def fetch_cycle(self) -> list[PipelineResult]:
        """Run one pipeline per configured league, concurrently.

        Leagues never share event ids, so their writes cannot collide.
        """
        self._cycle_count += 1
        leagues = self._settings.leagues
        log.info("fetch_cycle_start", cycle=self._cycle_count, leagues=leagues)

        outcomes = await asyncio.gather(
            *(self._pipeline.run(league) for league in leagues),
            return_exceptions=True,
        )

        results: list[PipelineResult] = []
        for league, outcome in zip(leagues, outcomes):
            if isinstance(outcome, BaseException):
                log.error(
                    "league_ingest_error",
                    league=league,
                    error=repr(outcome),
                    exc_info=outcome,
                )
                continue
            results.append(outcome)

        log.info(
            "fetch_cycle_complete",
            cycle=self._cycle_count,
            leagues_ok=len(results),
            leagues_failed=len(leagues) - len(results),
            odds_written=sum(r.odds.written for r in results),
            open_odds_written=sum(r.open_odds.written for r in results),
            truncated=[r.league for r in results if r.truncated],
        )
        return results

    async def reconcile(self) -> ReconciliationReport | None:
        """Sample events and report odds/open_odds divergence."""
        try:
            return await self._reconciler.check(
                sample_size=self._settings.reconcile_sample_size
            )
        except Exception:
            log.exception("reconcile_error")
            return None


def create_scheduler(poller: IngestPoller, settings: Settings) -> AsyncIOScheduler:
    """Create and configure the APScheduler instance."""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        poller.fetch_cycle,
        "interval",
        minutes=settings.poll_interval_minutes,
        id="fetch_odds",
        name="Fetch, normalize and store odds",
        next_run_time=datetime.now(timezone.utc),  # run immediately on start
        max_instances=1,
        coalesce=True,
    )

    scheduler.add_job(
        poller.reconcile,
        "interval",
        minutes=settings.reconcile_interval_minutes,
        id="reconcile_odds",
        name="Compare odds and open_odds",
        max_instances=1,
        coalesce=True,
    )

    return scheduler
