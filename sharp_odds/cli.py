"""CLI commands for Sharp Odds (one-off fetch, reconcile, run history)."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date

from sharp_odds.api.odds_client import DateWindow, SportsGameOddsClient
from sharp_odds.config import Settings
from sharp_odds.db.migrations import init_db
from sharp_odds.db.repository import Repository
from sharp_odds.ingest.pipeline import IngestPipeline
from sharp_odds.ingest.reconcile import OddsReconciler
from sharp_odds.main import configure_logging


async def run_fetch(
    league: str,
    days: int | None,
    start: str | None,
    end: str | None,
    cursor: str | None,
) -> None:
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings.log_level)

    window = None
    if start or end:
        first = date.fromisoformat(start) if start else date.today()
        last = date.fromisoformat(end) if end else first
        window = DateWindow(first, last)
    elif days is not None:
        window = DateWindow.upcoming(days)

    db = await init_db(settings.db_path)
    client = SportsGameOddsClient(settings)
    try:
        pipeline = IngestPipeline(settings, client, Repository(db))
        result = await pipeline.run(league, window=window, cursor=cursor)
        print(json.dumps(result.summary(), indent=2))
    finally:
        await client.close()
        await db.close()


async def run_reconcile(event_ids: list[str] | None, sample: int | None) -> int:
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings.log_level)

    db = await init_db(settings.db_path)
    try:
        reconciler = OddsReconciler(Repository(db))
        report = await reconciler.check(
            event_ids=event_ids or None,
            sample_size=sample or settings.reconcile_sample_size,
        )
        print(report.summary)
    finally:
        await db.close()
    return 0 if report.ok else 2


async def run_history(league: str | None, limit: int) -> None:
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings.log_level)

    db = await init_db(settings.db_path)
    try:
        rows = await Repository(db).get_recent_runs(limit=limit, league=league)
    finally:
        await db.close()

    if not rows:
        print("No ingest runs recorded yet.")
        return

    print("Recent ingest runs:")
    for row in rows:
        flags = []
        if row["rate_limited"]:
            flags.append("rate-limited")
        if row["truncated"]:
            flags.append("truncated")
        print(
            f"  {row['started_at']} {row['league']}: {row['pages_fetched']} pages, "
            f"{row['records_normalized']} normalized, {row['odds_written']} odds / "
            f"{row['open_odds_written']} open_odds written, {row['records_dropped']} dropped, "
            f"{row['records_failed']} failed"
            + (f" [{', '.join(flags)}]" if flags else "")
        )


def cli() -> None:
    parser = argparse.ArgumentParser(prog="sharp-odds-tools", description="Sharp Odds CLI tools")
    sub = parser.add_subparsers(dest="command")

    ft = sub.add_parser("fetch", help="Run the ingestion pipeline once for a league")
    ft.add_argument("league", help="League ID, e.g. NFL")
    ft.add_argument("--days", type=int, help="Look ahead this many days from today")
    ft.add_argument("--start", help="Window start (ISO date, e.g. 2025-01-15)")
    ft.add_argument("--end", help="Window end (ISO date, e.g. 2025-01-22)")
    ft.add_argument("--cursor", help="Resume from a provider pagination cursor")

    rc = sub.add_parser("reconcile", help="Compare odds and open_odds")
    rc.add_argument("--event", action="append", dest="events", help="Event ID (repeatable)")
    rc.add_argument("--sample", type=int, help="Number of random events to check")

    rn = sub.add_parser("runs", help="Show recent ingest run summaries")
    rn.add_argument("--league", help="Only this league")
    rn.add_argument("--limit", type=int, default=20)

    args = parser.parse_args()

    if args.command == "fetch":
        asyncio.run(run_fetch(args.league, args.days, args.start, args.end, args.cursor))
    elif args.command == "reconcile":
        sys.exit(asyncio.run(run_reconcile(args.events, args.sample)))
    elif args.command == "runs":
        asyncio.run(run_history(args.league, args.limit))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    cli()
