"""Pydantic models for SportsGameOdds responses.

The provider is loose about types: lines and prices arrive as numbers or
strings (sometimes the literal string "null"), so every scalar here is kept
raw and coerced later by ``sharp_odds.ingest.lines``.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, Field

RawScalar = Union[int, float, str, None]


class AltLineSchema(BaseModel):
    odds: RawScalar = None
    spread: RawScalar = None
    overUnder: RawScalar = None
    available: bool | None = None
    lastUpdatedAt: str | None = None


class BookmakerOddSchema(BaseModel):
    odds: RawScalar = None
    spread: RawScalar = None
    overUnder: RawScalar = None
    available: bool | None = None
    isMainLine: bool | None = None
    deeplink: str | None = None
    lastUpdatedAt: str | None = None
    altLines: list[AltLineSchema] = Field(default_factory=list)


class OddSchema(BaseModel):
    oddID: str | None = None
    marketName: str | None = None
    statID: str | None = None
    statEntityID: str | None = None
    periodID: str | None = None
    betTypeID: str | None = None
    sideID: str | None = None
    playerID: str | None = None
    bookOdds: RawScalar = None
    fairOdds: RawScalar = None
    bookSpread: RawScalar = None
    fairSpread: RawScalar = None
    bookOverUnder: RawScalar = None
    fairOverUnder: RawScalar = None
    byBookmaker: dict[str, BookmakerOddSchema] = Field(default_factory=dict)


class EventStatusSchema(BaseModel):
    startsAt: str | None = None
    started: bool | None = None
    live: bool | None = None
    completed: bool | None = None
    cancelled: bool | None = None
    displayShort: str | None = None


class EventSchema(BaseModel):
    eventID: str | None = None
    sportID: str | None = None
    leagueID: str | None = None
    status: EventStatusSchema = Field(default_factory=EventStatusSchema)
    teams: dict[str, Any] = Field(default_factory=dict)
    odds: dict[str, OddSchema] = Field(default_factory=dict)


class EventsPageSchema(BaseModel):
    success: bool = True
    data: list[dict[str, Any]] = Field(default_factory=list)
    nextCursor: str | None = None
