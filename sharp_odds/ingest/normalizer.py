"""Flatten SportsGameOdds event payloads into canonical odds records."""

from __future__ import annotations

import hashlib
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable

import structlog
from pydantic import ValidationError

from sharp_odds.api.schemas import (
    AltLineSchema,
    BookmakerOddSchema,
    EventSchema,
    OddSchema,
)
from sharp_odds.ingest.lines import coerce_line, line_key, parse_american_odds
from sharp_odds.ingest.models import BetType, OddsRecord, classify_bet_type

log = structlog.get_logger()

ALT_DIGEST_LENGTH = 12


class DropReason(str, Enum):
    INVALID = "invalid"
    UNSUPPORTED = "unsupported"
    UNAVAILABLE = "unavailable"
    DUPLICATE = "duplicate"


@dataclass
class NormalizedEvent:
    event_id: str | None
    records: list[OddsRecord] = field(default_factory=list)
    dropped: Counter[str] = field(default_factory=Counter)
    skipped_started: bool = False


def alt_odd_id(
    provider_odd_id: str, line: float | None, side: str, sportsbook: str, occurrence: int
) -> str:
    """Identity for one alternate line.

    ``occurrence`` counts earlier alternates from the same bookmaker and main
    line that share this line value, so two offers at the same number still
    get different ids. The line goes through ``line_key`` first, which makes
    "47.5" and 47.5 hash identically.
    """
    material = f"{line_key(line)}|{side}|{sportsbook}|{occurrence}"
    digest = hashlib.sha1(material.encode("utf-8")).hexdigest()[:ALT_DIGEST_LENGTH]
    return f"{provider_odd_id}_alt_{digest}"


def _split_odd_id(odd_id: str) -> tuple[str | None, str | None, str | None]:
    """(statEntityID, betTypeID, sideID) from "stat-entity-period-betType-side"."""
    parts = odd_id.split("-")
    if len(parts) < 5:
        return None, None, None
    return parts[1], parts[-2], parts[-1]


class OddsNormalizer:
    def __init__(
        self,
        league: str,
        bookmakers: Iterable[str] = (),
        started_buffer: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._league = league
        self._bookmakers = {b.lower() for b in bookmakers}
        self._started_buffer = started_buffer
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def normalize_event(self, raw: dict[str, Any] | EventSchema) -> NormalizedEvent:
        """Turn one provider event into records, one per (line x bookmaker).

        Malformed odd entries are counted under ``dropped`` and skipped; they
        never abort the rest of the event.
        """
        if isinstance(raw, EventSchema):
            event = raw
        else:
            try:
                event = EventSchema.model_validate(raw)
            except ValidationError as exc:
                log.warning(
                    "event_invalid",
                    event_id=raw.get("eventID") if isinstance(raw, dict) else None,
                    errors=exc.error_count(),
                )
                return NormalizedEvent(event_id=None, dropped=Counter({DropReason.INVALID.value: 1}))

        if not event.eventID:
            log.warning("event_missing_id", league=self._league)
            return NormalizedEvent(event_id=None, dropped=Counter({DropReason.INVALID.value: 1}))

        result = NormalizedEvent(event_id=event.eventID)
        if self._has_started(event):
            result.skipped_started = True
            log.debug("event_skipped_started", event_id=event.eventID)
            return result

        for odd in event.odds.values():
            self._normalize_odd(event.eventID, odd, result)

        log.debug(
            "event_normalized",
            event_id=event.eventID,
            records=len(result.records),
            dropped=dict(result.dropped),
        )
        return result

    # ── Internal ────────────────────────────────────────────────────

    def _has_started(self, event: EventSchema) -> bool:
        status = event.status
        if status.started or status.live or status.completed:
            return True
        if not status.startsAt:
            return False
        try:
            starts_at = datetime.fromisoformat(status.startsAt.replace("Z", "+00:00"))
        except ValueError:
            return False
        if starts_at.tzinfo is None:
            starts_at = starts_at.replace(tzinfo=timezone.utc)
        return self._clock() > starts_at + self._started_buffer

    def _normalize_odd(self, event_id: str, odd: OddSchema, result: NormalizedEvent) -> None:
        if not odd.oddID:
            result.dropped[DropReason.INVALID.value] += 1
            return

        entity_from_id, bet_code_from_id, side_from_id = _split_odd_id(odd.oddID)
        bet_type = classify_bet_type(
            odd.betTypeID or bet_code_from_id,
            odd.statEntityID or entity_from_id,
            odd.playerID,
        )
        if bet_type is BetType.UNKNOWN:
            result.dropped[DropReason.UNSUPPORTED.value] += 1
            log.debug("odd_unsupported", event_id=event_id, odd_id=odd.oddID, bet_type=odd.betTypeID)
            return

        side = odd.sideID or side_from_id
        if not side:
            result.dropped[DropReason.INVALID.value] += 1
            return

        for sportsbook, quote in odd.byBookmaker.items():
            sportsbook = sportsbook.lower()
            if self._bookmakers and sportsbook not in self._bookmakers:
                continue
            main = self._main_record(event_id, odd, bet_type, side, sportsbook, quote, result)
            if main is not None:
                result.records.append(main)
            self._alt_records(event_id, odd, bet_type, side, sportsbook, quote, result)

    def _main_record(
        self,
        event_id: str,
        odd: OddSchema,
        bet_type: BetType,
        side: str,
        sportsbook: str,
        quote: BookmakerOddSchema,
        result: NormalizedEvent,
    ) -> OddsRecord | None:
        if quote.available is False:
            result.dropped[DropReason.UNAVAILABLE.value] += 1
            return None
        book_odds = parse_american_odds(quote.odds)
        if book_odds is None:
            result.dropped[DropReason.INVALID.value] += 1
            return None

        if bet_type is BetType.SPREAD:
            line = coerce_line(quote.spread)
            if line is None:
                line = coerce_line(odd.bookSpread)
        elif bet_type in (BetType.TOTAL, BetType.PLAYER_PROP):
            line = coerce_line(quote.overUnder)
            if line is None:
                line = coerce_line(odd.bookOverUnder)
        else:
            line = None

        return self._record(
            event_id, odd, bet_type, side, sportsbook,
            odd_id=odd.oddID, line=line, book_odds=book_odds,
            deeplink=quote.deeplink, is_alt=False,
        )

    def _alt_records(
        self,
        event_id: str,
        odd: OddSchema,
        bet_type: BetType,
        side: str,
        sportsbook: str,
        quote: BookmakerOddSchema,
        result: NormalizedEvent,
    ) -> None:
        # Provider order matters: the occurrence counter is positional
        seen: Counter[str] = Counter()
        for alt in quote.altLines:
            line = self._alt_line(bet_type, alt)
            occurrence = seen[line_key(line)]
            seen[line_key(line)] += 1

            if alt.available is False:
                result.dropped[DropReason.UNAVAILABLE.value] += 1
                continue
            book_odds = parse_american_odds(alt.odds)
            if book_odds is None:
                result.dropped[DropReason.INVALID.value] += 1
                continue

            result.records.append(
                self._record(
                    event_id, odd, bet_type, side, sportsbook,
                    odd_id=alt_odd_id(odd.oddID or "", line, side, sportsbook, occurrence),
                    line=line, book_odds=book_odds,
                    deeplink=quote.deeplink, is_alt=True,
                )
            )

    @staticmethod
    def _alt_line(bet_type: BetType, alt: AltLineSchema) -> float | None:
        if bet_type is BetType.SPREAD:
            return coerce_line(alt.spread)
        if bet_type in (BetType.TOTAL, BetType.PLAYER_PROP):
            return coerce_line(alt.overUnder)
        line = coerce_line(alt.spread)
        return line if line is not None else coerce_line(alt.overUnder)

    def _record(
        self,
        event_id: str,
        odd: OddSchema,
        bet_type: BetType,
        side: str,
        sportsbook: str,
        *,
        odd_id: str,
        line: float | None,
        book_odds: int,
        deeplink: str | None,
        is_alt: bool,
    ) -> OddsRecord:
        return OddsRecord(
            event_id=event_id,
            league=self._league,
            odd_id=odd_id,
            provider_odd_id=odd.oddID or odd_id,
            sportsbook=sportsbook,
            market_name=odd.marketName or odd.oddID or odd_id,
            bet_type=bet_type,
            side=side,
            line=line,
            book_odds=book_odds,
            is_alt_line=is_alt,
            stat_id=odd.statID,
            period_id=odd.periodID,
            player_id=odd.playerID,
            deeplink=deeplink,
        )
