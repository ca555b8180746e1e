"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import aiosqlite

from sharp_odds.db.models import SCHEMA_SQL
from sharp_odds.db.repository import Repository
from sharp_odds.config import Settings

FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
KICKOFF = "2025-01-16T01:00:00.000Z"


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        sgo_api_key="test_key",
        db_path=":memory:",
        leagues=["NFL"],
        max_retries=2,
        retry_base_delay_seconds=0.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def db():
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await conn.executescript(SCHEMA_SQL)
    await conn.commit()
    yield conn
    await conn.close()


@pytest.fixture
async def repo(db) -> Repository:
    return Repository(db)


def _odd(
    odd_id: str | None,
    by_bookmaker: dict[str, dict[str, Any]],
    **fields: Any,
) -> dict[str, Any]:
    odd: dict[str, Any] = {"byBookmaker": by_bookmaker}
    if odd_id is not None:
        odd["oddID"] = odd_id
        parts = odd_id.split("-")
        if len(parts) == 5:
            odd.update(
                statID=parts[0],
                statEntityID=parts[1],
                periodID=parts[2],
                betTypeID=parts[3],
                sideID=parts[4],
            )
    odd.setdefault("marketName", "Over/Under")
    odd.update(fields)
    return odd


def _event(
    event_id: str = "evt_nfl_1",
    odds: list[dict[str, Any]] | None = None,
    starts_at: str = KICKOFF,
    **status: Any,
) -> dict[str, Any]:
    return {
        "eventID": event_id,
        "sportID": "FOOTBALL",
        "leagueID": "NFL",
        "status": {"startsAt": starts_at, "started": False, "completed": False, **status},
        "teams": {
            "home": {"teamID": "KANSAS_CITY_CHIEFS_NFL", "names": {"long": "Kansas City Chiefs"}},
            "away": {"teamID": "BUFFALO_BILLS_NFL", "names": {"long": "Buffalo Bills"}},
        },
        "odds": {
            f"{o.get('oddID', 'missing')}#{i}": o for i, o in enumerate(odds or [])
        },
    }


@pytest.fixture
def make_odd():
    return _odd


@pytest.fixture
def make_event():
    return _event


def total_with_alts(
    base_odds: int = -110, alt_count: int = 10, line: Any = "47.5"
) -> dict[str, Any]:
    """Main total at 47.5 plus ``alt_count`` alternates at the same number."""
    return _odd(
        "points-all-game-ou-over",
        {
            "draftkings": {
                "odds": str(base_odds),
                "overUnder": line,
                "available": True,
                "deeplink": "https://sportsbook.draftkings.com/event/1",
                "altLines": [
                    {"odds": str(base_odds + i), "overUnder": line, "available": True}
                    for i in range(alt_count)
                ],
            }
        },
        bookOverUnder=line,
    )


@pytest.fixture
def make_total_with_alts():
    return total_with_alts
