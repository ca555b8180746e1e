"""Canonical odds records and their identity key."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

from sharp_odds.ingest.lines import line_key


class BetType(str, Enum):
    MONEYLINE = "moneyline"
    SPREAD = "spread"
    TOTAL = "total"
    PLAYER_PROP = "player_prop"
    YES_NO = "yes_no"
    EVEN_ODD = "even_odd"
    UNKNOWN = "unknown"


# Provider betTypeID -> category. Closed on purpose: new codes land in UNKNOWN.
BET_TYPE_CODES: dict[str, BetType] = {
    "ml": BetType.MONEYLINE,
    "ml3way": BetType.MONEYLINE,
    "sp": BetType.SPREAD,
    "ou": BetType.TOTAL,
    "yn": BetType.YES_NO,
    "eo": BetType.EVEN_ODD,
}

TEAM_STAT_ENTITIES = frozenset({"all", "home", "away"})


def classify_bet_type(
    code: str | None,
    stat_entity_id: str | None = None,
    player_id: str | None = None,
) -> BetType:
    bet_type = BET_TYPE_CODES.get((code or "").lower(), BetType.UNKNOWN)
    if bet_type is BetType.TOTAL:
        entity = (stat_entity_id or "").lower()
        if player_id or (entity and entity not in TEAM_STAT_ENTITIES):
            return BetType.PLAYER_PROP
    return bet_type


def format_ts(value: datetime) -> str:
    """ISO-8601 with fixed microsecond precision, so text order is time order."""
    return value.isoformat(timespec="microseconds")


class IdentityKey(NamedTuple):
    event_id: str
    odd_id: str
    line_key: str
    side: str
    sportsbook: str

    def __str__(self) -> str:
        return "|".join(self)


@dataclass
class OddsRecord:
    event_id: str
    league: str
    odd_id: str
    provider_odd_id: str
    sportsbook: str
    market_name: str
    bet_type: BetType
    side: str
    line: float | None
    book_odds: int
    is_alt_line: bool = False
    stat_id: str | None = None
    period_id: str | None = None
    player_id: str | None = None
    deeplink: str | None = None
    fetched_at: datetime | None = None

    @property
    def line_key(self) -> str:
        return line_key(self.line)

    @property
    def identity_key(self) -> IdentityKey:
        return IdentityKey(
            self.event_id, self.odd_id, self.line_key, self.side, self.sportsbook
        )

    def to_row(self, written_at: datetime) -> dict[str, Any]:
        """Column mapping shared by ``odds`` and ``open_odds``."""
        if self.fetched_at is None:
            raise ValueError(f"record {self.identity_key} has no fetched_at")
        stamp = format_ts(written_at)
        return {
            "event_id": self.event_id,
            "league": self.league,
            "odd_id": self.odd_id,
            "provider_odd_id": self.provider_odd_id,
            "sportsbook": self.sportsbook,
            "market_name": self.market_name,
            "bet_type": self.bet_type.value,
            "side": self.side,
            "line": self.line,
            "line_key": self.line_key,
            "book_odds": self.book_odds,
            "is_alt_line": int(self.is_alt_line),
            "stat_id": self.stat_id,
            "period_id": self.period_id,
            "player_id": self.player_id,
            "deeplink": self.deeplink,
            "fetched_at": format_ts(self.fetched_at),
            "created_at": stamp,
            "updated_at": stamp,
        }
