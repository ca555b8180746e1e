"""Cross-table reconciliation between ``odds`` and ``open_odds``.

Reports only. A key missing from one table points at an upstream defect, and
quietly copying rows across would hide it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from sharp_odds.db.models import Table
from sharp_odds.db.repository import Repository
from sharp_odds.ingest.models import IdentityKey

log = structlog.get_logger()


@dataclass
class EventDivergence:
    event_id: str
    odds_rows: int
    open_odds_rows: int
    missing_in_open_odds: list[IdentityKey] = field(default_factory=list)
    missing_in_odds: list[IdentityKey] = field(default_factory=list)
    opening_after_current: list[IdentityKey] = field(default_factory=list)

    @property
    def diverged(self) -> bool:
        return bool(
            self.missing_in_open_odds or self.missing_in_odds or self.opening_after_current
        )


@dataclass
class ReconciliationReport:
    events_checked: int = 0
    divergences: list[EventDivergence] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.divergences

    @property
    def summary(self) -> str:
        if self.ok:
            return f"{self.events_checked} events checked, odds and open_odds agree"
        lines = [f"{self.events_checked} events checked, {len(self.divergences)} diverged:"]
        for d in self.divergences:
            lines.append(
                f"  {d.event_id}: odds={d.odds_rows} open_odds={d.open_odds_rows} "
                f"missing_in_open_odds={len(d.missing_in_open_odds)} "
                f"missing_in_odds={len(d.missing_in_odds)} "
                f"opening_after_current={len(d.opening_after_current)}"
            )
        return "\n".join(lines)


class OddsReconciler:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def check(
        self, event_ids: list[str] | None = None, sample_size: int = 20
    ) -> ReconciliationReport:
        """Compare both tables for the given events, or a random sample."""
        if event_ids is None:
            event_ids = await self._repo.sample_event_ids(sample_size)

        report = ReconciliationReport()
        for event_id in event_ids:
            current = await self._repo.get_identity_keys(Table.ODDS, event_id)
            opening = await self._repo.get_identity_keys(Table.OPEN_ODDS, event_id)
            divergence = EventDivergence(
                event_id=event_id,
                odds_rows=len(current),
                open_odds_rows=len(opening),
                missing_in_open_odds=sorted(current - opening),
                missing_in_odds=sorted(opening - current),
                opening_after_current=await self._repo.get_opening_after_current(event_id),
            )
            report.events_checked += 1
            if divergence.diverged:
                report.divergences.append(divergence)
                log.warning(
                    "reconcile_divergence",
                    event_id=event_id,
                    odds_rows=divergence.odds_rows,
                    open_odds_rows=divergence.open_odds_rows,
                    missing_in_open_odds=[str(k) for k in divergence.missing_in_open_odds[:10]],
                    missing_in_odds=[str(k) for k in divergence.missing_in_odds[:10]],
                    opening_after_current=len(divergence.opening_after_current),
                )

        log.info(
            "reconcile_complete",
            events_checked=report.events_checked,
            diverged=len(report.divergences),
        )
        return report
