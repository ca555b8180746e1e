"""SQL schema definitions for Sharp Odds.

``odds`` and ``open_odds`` share one column set and one identity constraint;
only their write statements differ (see ``Repository``). ``line_key`` is the
canonical text of ``line`` ("none" when absent) because a UNIQUE constraint
treats NULL lines as distinct from each other.
"""

from enum import Enum


class Table(str, Enum):
    ODDS = "odds"
    OPEN_ODDS = "open_odds"


IDENTITY_COLUMNS = ("event_id", "odd_id", "line_key", "side", "sportsbook")

ODDS_COLUMNS = (
    "event_id",
    "league",
    "odd_id",
    "provider_odd_id",
    "sportsbook",
    "market_name",
    "bet_type",
    "side",
    "line",
    "line_key",
    "book_odds",
    "is_alt_line",
    "stat_id",
    "period_id",
    "player_id",
    "deeplink",
    "fetched_at",
    "created_at",
    "updated_at",
)

_ODDS_TABLE_TEMPLATE = """
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT NOT NULL,
    league TEXT NOT NULL,
    odd_id TEXT NOT NULL,
    provider_odd_id TEXT NOT NULL,
    sportsbook TEXT NOT NULL,
    market_name TEXT NOT NULL,
    bet_type TEXT NOT NULL,
    side TEXT NOT NULL,
    line REAL,
    line_key TEXT NOT NULL,
    book_odds INTEGER NOT NULL CHECK (book_odds <= -100 OR book_odds >= 100),
    is_alt_line INTEGER NOT NULL DEFAULT 0,
    stat_id TEXT,
    period_id TEXT,
    player_id TEXT,
    deeplink TEXT,
    fetched_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(event_id, odd_id, line_key, side, sportsbook)
);

CREATE INDEX IF NOT EXISTS idx_{table}_event
    ON {table}(event_id);
"""

SCHEMA_SQL = (
    _ODDS_TABLE_TEMPLATE.format(table=Table.ODDS.value)
    + _ODDS_TABLE_TEMPLATE.format(table=Table.OPEN_ODDS.value)
    + """
CREATE TABLE IF NOT EXISTS ingest_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    league TEXT NOT NULL,
    started_at TEXT NOT NULL,
    finished_at TEXT NOT NULL,
    pages_fetched INTEGER NOT NULL,
    records_normalized INTEGER NOT NULL,
    odds_written INTEGER NOT NULL,
    open_odds_written INTEGER NOT NULL,
    records_dropped INTEGER NOT NULL,
    records_failed INTEGER NOT NULL,
    rate_limited INTEGER NOT NULL DEFAULT 0,
    truncated INTEGER NOT NULL DEFAULT 0,
    warnings_json TEXT
);

CREATE INDEX IF NOT EXISTS idx_ingest_runs_league
    ON ingest_runs(league, started_at);
"""
)
