"""Entry point for the Sharp Odds ingestion service."""

from __future__ import annotations

import asyncio
import signal
import sys

import structlog

from sharp_odds.api.odds_client import SportsGameOddsClient
from sharp_odds.config import Settings
from sharp_odds.db.migrations import init_db
from sharp_odds.db.repository import Repository
from sharp_odds.ingest.pipeline import IngestPipeline
from sharp_odds.ingest.reconcile import OddsReconciler
from sharp_odds.polling.scheduler import IngestPoller, create_scheduler

VERSION = "0.1.0"


def configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog._log_levels.NAME_TO_LEVEL[level.lower()]
        ),
    )


async def run() -> None:
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings.log_level)

    log = structlog.get_logger()
    log.info("starting", version=VERSION, leagues=settings.leagues)

    db = await init_db(settings.db_path)
    repo = Repository(db)
    client = SportsGameOddsClient(settings)
    pipeline = IngestPipeline(settings, client, repo)
    poller = IngestPoller(settings, pipeline, OddsReconciler(repo))
    scheduler = create_scheduler(poller, settings)

    stop_event = asyncio.Event()

    def handle_shutdown(*_: object) -> None:
        log.info("shutdown_requested")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_shutdown)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler for SIGTERM
            pass

    scheduler.start()
    log.info(
        "scheduler_started",
        interval_minutes=settings.poll_interval_minutes,
        reconcile_minutes=settings.reconcile_interval_minutes,
    )

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.shutdown(wait=False)
        await client.close()
        await db.close()
        log.info("shutdown_complete")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
