"""End-to-end tests for the ingestion pipeline."""

from __future__ import annotations

import httpx
import pytest

from sharp_odds.api.odds_client import SportsGameOddsClient
from sharp_odds.api.retry import RetryPolicy
from sharp_odds.db.models import Table
from sharp_odds.ingest.pipeline import IngestPipeline
from sharp_odds.ingest.reconcile import OddsReconciler
from sharp_odds.polling.scheduler import IngestPoller

NO_WAIT = RetryPolicy(max_retries=2, base_delay=0.0)


class FakeProvider:
    """Serves per-league pages of events, chained by ``c<N>`` cursors."""

    def __init__(self, pages: dict[str, list[list[dict]]], fail_on: dict[int, int] | None = None):
        self.pages = pages
        self.fail_on = fail_on or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        league = request.url.params["leagueID"]
        cursor = request.url.params.get("cursor")
        number = int(cursor.removeprefix("c")) if cursor else 1
        if number in self.fail_on:
            return httpx.Response(self.fail_on[number])
        league_pages = self.pages.get(league, [])
        if number > len(league_pages):
            return httpx.Response(200, json={"success": True, "data": []})
        next_cursor = f"c{number + 1}" if number < len(league_pages) else None
        return httpx.Response(
            200,
            json={"success": True, "data": league_pages[number - 1], "nextCursor": next_cursor},
        )


def _pipeline(settings, repo, clock, provider) -> tuple[IngestPipeline, SportsGameOddsClient]:
    client = SportsGameOddsClient(
        settings, transport=httpx.MockTransport(provider), policy=NO_WAIT
    )
    return IngestPipeline(settings, client, repo, clock=clock), client


@pytest.mark.asyncio
async def test_alternates_at_same_line_all_land(settings, repo, clock, make_event, make_total_with_alts):
    provider = FakeProvider({"NFL": [[make_event(odds=[make_total_with_alts()])]]})
    pipeline, client = _pipeline(settings, repo, clock, provider)

    result = await pipeline.run("NFL")
    await client.close()

    assert result.records_normalized == 11
    assert (result.odds.attempted, result.odds.written) == (11, 11)
    assert (result.open_odds.attempted, result.open_odds.written) == (11, 11)
    assert result.records_dropped == 0
    assert not result.truncated
    assert await repo.count_rows(Table.ODDS, "evt_nfl_1") == 11
    assert await repo.count_rows(Table.OPEN_ODDS, "evt_nfl_1") == 11
    keys = await repo.get_identity_keys(Table.ODDS, "evt_nfl_1")
    assert len({k.odd_id for k in keys}) == 11

    row = await repo.get_odds_row(Table.ODDS, sorted(keys)[0])
    assert row["league"] == "NFL"
    assert row["line"] == 47.5


@pytest.mark.asyncio
async def test_price_move_updates_current_but_not_opening(
    settings, repo, clock, make_event, make_total_with_alts
):
    first = FakeProvider({"NFL": [[make_event(odds=[make_total_with_alts(-110)])]]})
    pipeline, client = _pipeline(settings, repo, clock, first)
    await pipeline.run("NFL")
    await client.close()
    keys = await repo.get_identity_keys(Table.ODDS, "evt_nfl_1")
    opening_before = {k: dict(await repo.get_odds_row(Table.OPEN_ODDS, k)) for k in keys}
    current_before = {k: dict(await repo.get_odds_row(Table.ODDS, k)) for k in keys}

    clock.advance(minutes=5)
    moved = FakeProvider({"NFL": [[make_event(odds=[make_total_with_alts(-109)])]]})
    pipeline, client = _pipeline(settings, repo, clock, moved)
    result = await pipeline.run("NFL")
    await client.close()

    assert result.odds.written == 11
    assert result.open_odds.written == 0
    assert result.open_odds.already_present == 11
    assert result.open_odds.failed == 0
    assert await repo.count_rows(Table.ODDS) == 11
    assert await repo.count_rows(Table.OPEN_ODDS) == 11
    for key in keys:
        current = await repo.get_odds_row(Table.ODDS, key)
        assert current["book_odds"] == current_before[key]["book_odds"] + 1
        assert current["updated_at"] > current_before[key]["updated_at"]
        assert current["created_at"] == current_before[key]["created_at"]
        assert dict(await repo.get_odds_row(Table.OPEN_ODDS, key)) == opening_before[key]


@pytest.mark.asyncio
async def test_rate_limit_keeps_earlier_pages(settings, repo, clock, make_event, make_odd):
    pages = [
        [make_event(f"evt_{n}", odds=[make_odd("points-home-game-ml-home", {"fanduel": {"odds": "-120"}})])]
        for n in range(1, 6)
    ]
    provider = FakeProvider({"NFL": pages}, fail_on={3: 429})
    pipeline, client = _pipeline(settings, repo, clock, provider)

    result = await pipeline.run("NFL")
    await client.close()

    assert result.pages_fetched == 2
    assert result.rate_limited
    assert result.truncated
    assert result.resume_cursor == "c3"
    assert any("429" in w for w in result.warnings)
    assert result.odds.written == 2
    assert await repo.count_rows(Table.ODDS, "evt_1") == 1
    assert await repo.count_rows(Table.ODDS, "evt_2") == 1
    assert await repo.count_rows(Table.ODDS, "evt_3") == 0
    assert result.summary()["rate_limited"] is True


@pytest.mark.asyncio
async def test_resumed_run_cut_off_on_first_page_keeps_its_cursor(
    settings, repo, clock, make_event, make_odd
):
    pages = [
        [make_event(f"evt_{n}", odds=[make_odd("points-home-game-ml-home", {"fanduel": {"odds": "-120"}})])]
        for n in range(1, 6)
    ]
    provider = FakeProvider({"NFL": pages}, fail_on={3: 429})
    pipeline, client = _pipeline(settings, repo, clock, provider)

    result = await pipeline.run("NFL", cursor="c3")
    await client.close()

    assert result.pages_fetched == 0
    assert result.truncated
    assert result.resume_cursor == "c3"
    assert result.summary()["resume_cursor"] == "c3"


@pytest.mark.asyncio
async def test_duplicate_quote_is_merged_and_reported(settings, repo, clock, make_event, make_odd):
    event = make_event(
        odds=[
            make_odd("points-home-game-ml-home", {"fanduel": {"odds": "-120"}}),
            make_odd("points-home-game-ml-home", {"fanduel": {"odds": "-125"}}),
        ]
    )
    pipeline, client = _pipeline(settings, repo, clock, FakeProvider({"NFL": [[event]]}))

    result = await pipeline.run("NFL")
    await client.close()

    assert result.dropped["duplicate"] == 1
    assert len(result.summary()["duplicate_keys"]) == 1
    assert result.odds.written == 1
    [key] = await repo.get_identity_keys(Table.ODDS, "evt_nfl_1")
    assert (await repo.get_odds_row(Table.ODDS, key))["book_odds"] == -125


@pytest.mark.asyncio
async def test_started_events_are_skipped(settings, repo, clock, make_event, make_total_with_alts):
    events = [
        make_event("evt_live", odds=[make_total_with_alts()], started=True),
        make_event("evt_upcoming", odds=[make_total_with_alts()]),
    ]
    pipeline, client = _pipeline(settings, repo, clock, FakeProvider({"NFL": [events]}))

    result = await pipeline.run("NFL")
    await client.close()

    assert result.events_seen == 2
    assert result.events_skipped_started == 1
    assert await repo.count_rows(Table.ODDS, "evt_live") == 0
    assert await repo.count_rows(Table.ODDS, "evt_upcoming") == 11


@pytest.mark.asyncio
async def test_exact_row_ceiling_is_flagged(settings, repo, clock, make_event, make_total_with_alts):
    settings.known_row_ceilings = [11]
    pipeline, client = _pipeline(
        settings, repo, clock, FakeProvider({"NFL": [[make_event(odds=[make_total_with_alts()])]]})
    )

    result = await pipeline.run("NFL")
    await client.close()

    assert any("exactly 11 rows" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_run_is_recorded(settings, repo, clock, make_event, make_total_with_alts):
    pipeline, client = _pipeline(
        settings, repo, clock, FakeProvider({"NFL": [[make_event(odds=[make_total_with_alts()])]]})
    )
    await pipeline.run("NFL")
    await client.close()

    [run] = await repo.get_recent_runs(league="NFL")
    assert run["pages_fetched"] == 1
    assert run["odds_written"] == 11
    assert run["open_odds_written"] == 11
    assert run["truncated"] == 0
    assert run["warnings_json"] is None


@pytest.mark.asyncio
async def test_fetch_cycle_runs_leagues_concurrently(
    settings, repo, clock, make_event, make_total_with_alts, make_odd
):
    settings.leagues = ["NFL", "NBA"]
    provider = FakeProvider(
        {
            "NFL": [[make_event("evt_nfl", odds=[make_total_with_alts()])]],
            "NBA": [
                [make_event("evt_nba", odds=[make_odd("points-home-game-ml-home", {"fanduel": {"odds": "+150"}})])]
            ],
        }
    )
    pipeline, client = _pipeline(settings, repo, clock, provider)
    poller = IngestPoller(settings, pipeline, OddsReconciler(repo))

    results = await poller.fetch_cycle()
    report = await poller.reconcile()
    await client.close()

    assert sorted(r.league for r in results) == ["NBA", "NFL"]
    assert await repo.count_rows(Table.ODDS, "evt_nfl") == 11
    assert await repo.count_rows(Table.ODDS, "evt_nba") == 1
    assert report is not None and report.ok
