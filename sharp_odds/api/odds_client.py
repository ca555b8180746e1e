"""Async client for the SportsGameOdds events API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncIterator

import httpx
import structlog
from pydantic import ValidationError

from sharp_odds.api.retry import (
    RetryPolicy,
    TransientFetchError,
    safe_url,
    send_with_backoff,
)
from sharp_odds.api.schemas import EventsPageSchema
from sharp_odds.config import Settings

log = structlog.get_logger()


@dataclass(frozen=True)
class DateWindow:
    start: date
    end: date

    @classmethod
    def upcoming(cls, days: int, today: date | None = None) -> DateWindow:
        """Today through ``days`` days ahead."""
        start = today or datetime.now(timezone.utc).date()
        return cls(start=start, end=start + timedelta(days=days))


@dataclass
class EventPage:
    number: int
    events: list[dict[str, Any]]
    next_cursor: str | None


@dataclass
class FetchReport:
    """How a paginated fetch ended. Filled in while pages are consumed."""

    pages: int = 0
    events: int = 0
    rate_limited: bool = False
    page_limit_hit: bool = False
    error: str | None = None
    last_cursor: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return self.rate_limited or self.page_limit_hit or self.error is not None


class SportsGameOddsClient:
    EVENTS_PATH = "/events"

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._settings = settings
        self._policy = policy or RetryPolicy.from_settings(settings)
        self._client = httpx.AsyncClient(
            base_url=settings.sgo_base_url,
            timeout=settings.request_timeout_seconds,
            headers={"X-API-Key": settings.sgo_api_key},
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ── Public methods ──────────────────────────────────────────────

    async def iter_event_pages(
        self,
        league: str,
        window: DateWindow,
        report: FetchReport,
        cursor: str | None = None,
    ) -> AsyncIterator[EventPage]:
        """Yield pages of raw events for a league until the provider runs dry.

        Stops early (without raising) on HTTP 429, on any non-2xx status, when
        retries are exhausted, or when ``max_pages`` is reached; the reason is
        recorded on ``report``. Resume a truncated crawl by passing
        ``report.last_cursor`` back in as ``cursor``.
        """
        if cursor:
            report.last_cursor = cursor
        max_pages = self._settings.max_pages
        while True:
            if report.pages >= max_pages:
                report.page_limit_hit = True
                report.warnings.append(
                    f"{league}: stopped after {max_pages} pages (page limit); "
                    f"resume cursor {cursor}"
                )
                log.warning("odds_page_limit_hit", league=league, max_pages=max_pages)
                return

            params = self._page_params(league, window, cursor)
            label = f"{league} page {report.pages + 1}"
            try:
                resp = await send_with_backoff(
                    lambda: self._client.get(self.EVENTS_PATH, params=params),
                    self._policy,
                    label=label,
                )
            except TransientFetchError as exc:
                report.error = str(exc)
                report.warnings.append(f"{league}: fetch abandoned, {exc}")
                log.error("odds_fetch_failed", league=league, error=str(exc))
                return

            if resp.status_code == 429:
                report.rate_limited = True
                report.warnings.append(
                    f"{league}: rate limited (HTTP 429) on page {report.pages + 1}; "
                    f"results truncated after {report.pages} pages"
                )
                log.warning("odds_rate_limited", league=league, page=report.pages + 1)
                return

            if resp.is_error:
                report.error = f"HTTP {resp.status_code} from {safe_url(resp.request.url)}"
                report.warnings.append(f"{league}: fetch stopped, {report.error}")
                log.error("odds_fetch_failed", league=league, status=resp.status_code)
                return

            try:
                page = EventsPageSchema.model_validate(resp.json())
            except (ValueError, ValidationError) as exc:
                report.error = f"unreadable response body: {exc}"
                report.warnings.append(f"{league}: fetch stopped, {report.error}")
                log.error("odds_page_unreadable", league=league, error=str(exc))
                return

            if not page.success or not page.data:
                log.info("odds_pages_exhausted", league=league, pages=report.pages)
                return

            report.pages += 1
            report.events += len(page.data)
            report.last_cursor = page.nextCursor
            log.info(
                "odds_page_fetched",
                league=league,
                page=report.pages,
                events=len(page.data),
                has_more=page.nextCursor is not None,
            )
            yield EventPage(number=report.pages, events=page.data, next_cursor=page.nextCursor)

            if not page.nextCursor:
                return
            cursor = page.nextCursor

    # ── Internal ────────────────────────────────────────────────────

    def _page_params(
        self, league: str, window: DateWindow, cursor: str | None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "leagueID": league,
            "type": "match",
            "startsAfter": window.start.isoformat(),
            "startsBefore": window.end.isoformat(),
            "limit": self._settings.page_size,
            "includeAltLines": "true",
        }
        if cursor:
            params["cursor"] = cursor
        return params
