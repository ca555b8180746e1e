"""Collision-free, timestamp-spread write batches."""

from __future__ import annotations

import dataclasses
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

import structlog

from sharp_odds.ingest.models import IdentityKey, OddsRecord

log = structlog.get_logger()

ONE_MICROSECOND = timedelta(microseconds=1)


@dataclass
class DuplicateNote:
    key: IdentityKey
    replaced_odds: int
    kept_odds: int

    def __str__(self) -> str:
        return (
            f"merged duplicate {self.key}: book_odds {self.replaced_odds} -> "
            f"{self.kept_odds} (last observed wins)"
        )


@dataclass
class BatchPlan:
    batches: list[list[OddsRecord]] = field(default_factory=list)
    duplicates: list[DuplicateNote] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def record_count(self) -> int:
        return sum(len(b) for b in self.batches)


class OddsBatcher:
    """Turns one fetch cycle's records into write-ready batches.

    Holds the last timestamp it handed out, so an instance must live for one
    pipeline invocation only; successive ``plan`` calls then keep stamping
    forward instead of reusing a clock value.
    """

    def __init__(
        self,
        batch_size: int = 500,
        known_ceilings: Iterable[int] = (1000,),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._batch_size = batch_size
        self._ceilings = sorted(set(known_ceilings))
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_stamp: datetime | None = None

    def plan(self, records: Iterable[OddsRecord]) -> BatchPlan:
        plan = BatchPlan()

        # Re-assigning an existing key keeps its original position
        merged: dict[IdentityKey, OddsRecord] = {}
        for record in records:
            key = record.identity_key
            previous = merged.get(key)
            if previous is not None:
                note = DuplicateNote(key, previous.book_odds, record.book_odds)
                plan.duplicates.append(note)
                log.info("duplicate_merged", note=str(note))
            merged[key] = record

        stamped = self._stamp(list(merged.values()))
        for start in range(0, len(stamped), self._batch_size):
            plan.batches.append(stamped[start : start + self._batch_size])

        plan.warnings.extend(self._ceiling_warnings(stamped))
        log.debug(
            "batches_planned",
            records=len(stamped),
            batches=len(plan.batches),
            duplicates=len(plan.duplicates),
        )
        return plan

    # ── Internal ────────────────────────────────────────────────────

    def _stamp(self, records: list[OddsRecord]) -> list[OddsRecord]:
        """Give every record its own strictly increasing ``fetched_at``."""
        if not records:
            return []
        base = self._clock()
        if self._last_stamp is not None and base <= self._last_stamp:
            base = self._last_stamp + ONE_MICROSECOND
        stamped = [
            dataclasses.replace(r, fetched_at=base + i * ONE_MICROSECOND)
            for i, r in enumerate(records)
        ]
        self._last_stamp = stamped[-1].fetched_at
        return stamped

    def _ceiling_warnings(self, records: list[OddsRecord]) -> list[str]:
        if not self._ceilings:
            return []
        per_event = Counter(r.event_id for r in records)
        warnings = []
        for event_id, count in sorted(per_event.items()):
            for ceiling in self._ceilings:
                if count >= ceiling:
                    warnings.append(
                        f"event {event_id}: {count} records in one cycle reaches known "
                        f"row ceiling {ceiling}; compare attempted vs written counts"
                    )
                    log.warning(
                        "row_ceiling_approached",
                        event_id=event_id,
                        records=count,
                        ceiling=ceiling,
                    )
        return warnings
