"""Match center: next-match lookup and the match hero view."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from api.match_center import MatchCenter
from shared.models.domain import AssetDTO, PredictionView
from shared.models.enums import MatchStatus, PredictionSource

KICKOFF = datetime(2024, 8, 17, 14, 0, tzinfo=timezone.utc)
NOW = KICKOFF - timedelta(days=2)


class StubPredictions:
    def __init__(self) -> None:
        self.asked: list[int] = []

    async def get_prediction(self, match_id: int) -> Optional[PredictionView]:
        self.asked.append(match_id)
        return PredictionView(
            id=1,
            match_id=match_id,
            home_win_probability=50.0,
            draw_probability=25.0,
            away_win_probability=25.0,
            predicted_home_score=2.0,
            predicted_away_score=1.0,
            confidence=0.6,
            source=PredictionSource.MODEL,
        )


class StubAssets:
    def __init__(self, missing: set[int] | None = None) -> None:
        self.missing = missing or set()

    async def team_assets(self, team_id: int) -> Optional[AssetDTO]:
        if team_id in self.missing:
            return AssetDTO()
        return AssetDTO(logo_url=f"https://img.example/{team_id}.png")


@pytest.fixture
def predictions() -> StubPredictions:
    return StubPredictions()


@pytest.fixture
def center(db, settings, predictions) -> MatchCenter:
    return MatchCenter(db, predictions, StubAssets(), settings, now=lambda: NOW)


@pytest.mark.asyncio
async def test_next_match_picks_the_soonest_fixture(factory, center: MatchCenter) -> None:
    arsenal = await factory.team("Arsenal")
    wolves = await factory.team("Wolves")
    chelsea = await factory.team("Chelsea")
    later = await factory.match(chelsea, arsenal, when=KICKOFF + timedelta(days=7))
    soon = await factory.match(arsenal, wolves, when=KICKOFF)
    await factory.match(arsenal, chelsea, when=NOW - timedelta(days=3), status="FINISHED")

    hero = await center.next_match(arsenal.id)

    assert hero is not None
    assert hero.match_id == soon.id
    assert hero.match_id != later.id
    assert hero.home_team.name == "Arsenal"
    assert hero.away_team.logo_url == f"https://img.example/{wolves.id}.png"


@pytest.mark.asyncio
async def test_next_match_finds_away_fixtures(factory, center: MatchCenter) -> None:
    arsenal = await factory.team("Arsenal")
    wolves = await factory.team("Wolves")
    match = await factory.match(wolves, arsenal, when=KICKOFF)

    hero = await center.next_match(arsenal.id)

    assert hero is not None and hero.match_id == match.id
    assert hero.away_team.id == arsenal.id


@pytest.mark.asyncio
async def test_next_match_ignores_fixtures_beyond_the_window(factory, center: MatchCenter) -> None:
    arsenal = await factory.team("Arsenal")
    wolves = await factory.team("Wolves")
    await factory.match(arsenal, wolves, when=NOW + timedelta(days=31))
    await factory.match(arsenal, wolves, when=NOW - timedelta(hours=1))

    assert await center.next_match(arsenal.id) is None


@pytest.mark.asyncio
async def test_next_match_filters_by_season(factory, center: MatchCenter) -> None:
    arsenal = await factory.team("Arsenal")
    wolves = await factory.team("Wolves")
    old = await factory.season("2023", is_current=False)
    current = await factory.season("2024")
    await factory.match(arsenal, wolves, when=KICKOFF, season=old)
    in_season = await factory.match(wolves, arsenal, when=KICKOFF + timedelta(days=3), season=current)

    hero = await center.next_match(arsenal.id, season_id=current.id)

    assert hero is not None and hero.match_id == in_season.id


@pytest.mark.asyncio
async def test_next_match_unknown_team(factory, center: MatchCenter) -> None:
    assert await center.next_match(999) is None


@pytest.mark.asyncio
async def test_match_detail_embeds_prediction_and_competition(
    factory, center: MatchCenter, predictions: StubPredictions
) -> None:
    pl = await factory.competition()
    arsenal = await factory.team("Arsenal")
    wolves = await factory.team("Wolves")
    match = await factory.match(arsenal, wolves, competition=pl, venue="Emirates Stadium")

    hero = await center.match_detail(match.id)

    assert hero is not None
    assert hero.competition == "Premier League"
    assert hero.venue == "Emirates Stadium"
    assert hero.status == MatchStatus.SCHEDULED
    assert hero.match_date == KICKOFF
    assert hero.prediction is not None and hero.prediction.match_id == match.id
    assert hero.current_minute is None
    assert predictions.asked == [match.id]


@pytest.mark.asyncio
async def test_match_detail_without_assets_leaves_logo_empty(factory, db, settings, predictions) -> None:
    arsenal = await factory.team("Arsenal")
    wolves = await factory.team("Wolves")
    match = await factory.match(arsenal, wolves)
    center = MatchCenter(db, predictions, StubAssets(missing={wolves.id}), settings, now=lambda: NOW)

    hero = await center.match_detail(match.id)

    assert hero.home_team.logo_url is not None
    assert hero.away_team.logo_url is None


@pytest.mark.asyncio
async def test_live_minute_is_capped(factory, db, settings, predictions) -> None:
    arsenal = await factory.team("Arsenal")
    wolves = await factory.team("Wolves")
    match = await factory.match(arsenal, wolves, status="LIVE")

    first_half = MatchCenter(db, predictions, StubAssets(), settings, now=lambda: KICKOFF + timedelta(minutes=23))
    stoppage = MatchCenter(db, predictions, StubAssets(), settings, now=lambda: KICKOFF + timedelta(minutes=104))

    assert (await first_half.match_detail(match.id)).current_minute == 23
    assert (await stoppage.match_detail(match.id)).current_minute == 90


@pytest.mark.asyncio
async def test_match_detail_unknown_id(db, center: MatchCenter) -> None:
    assert await center.match_detail(12345) is None
