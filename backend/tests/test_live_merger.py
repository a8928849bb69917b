"""Live snapshot merging and provider status mapping."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from ingest.live import LiveMatchMerger
from ingest.normalization.status import as_utc, map_status
from ingest.reconciliation.reconciler import EntityReconciler
from shared.models.domain import LiveMatchDTO, TeamDTO
from shared.models.enums import EntityType, MatchStatus, Provider
from shared.models.orm import MatchORM

NOW = datetime(2024, 8, 17, 15, 0, tzinfo=timezone.utc)


class StubLiveProvider:
    name = Provider.API_FOOTBALL

    def __init__(self, snapshots: list[LiveMatchDTO] | None = None) -> None:
        self.snapshots = snapshots or []
        self.requested: list[str] = []

    async def get_live_matches(self, competition_ref: str) -> list[LiveMatchDTO]:
        self.requested.append(competition_ref)
        return list(self.snapshots)


def snapshot(home: str = "Arsenal FC", away: str = "Chelsea FC", status: str = "2H", **scores) -> LiveMatchDTO:
    return LiveMatchDTO(
        external_id="fx-1",
        home_team=TeamDTO(external_id=f"af-{home}", name=home),
        away_team=TeamDTO(external_id=f"af-{away}", name=away),
        status=status,
        minute=67,
        **scores,
    )


def merger(db, settings, provider) -> LiveMatchMerger:
    return LiveMatchMerger(db, EntityReconciler(db), provider, settings, now=lambda: NOW)


@pytest.mark.parametrize(
    "code, expected",
    [
        ("SCHEDULED", MatchStatus.SCHEDULED),
        ("TIMED", MatchStatus.SCHEDULED),
        ("NS", MatchStatus.SCHEDULED),
        ("IN_PLAY", MatchStatus.LIVE),
        ("PAUSED", MatchStatus.LIVE),
        ("1H", MatchStatus.LIVE),
        ("HT", MatchStatus.LIVE),
        ("ht", MatchStatus.LIVE),
        ("FINISHED", MatchStatus.FINISHED),
        ("FT", MatchStatus.FINISHED),
        ("AET", MatchStatus.FINISHED),
        ("PST", MatchStatus.POSTPONED),
        ("CANC", MatchStatus.CANCELLED),
        ("WHATEVER", MatchStatus.SCHEDULED),
        (None, MatchStatus.SCHEDULED),
        ("", MatchStatus.SCHEDULED),
    ],
)
def test_map_status(code, expected) -> None:
    assert map_status(code) == expected


def test_as_utc_treats_naive_as_utc() -> None:
    naive = datetime(2024, 1, 1, 12, 0)
    assert as_utc(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    plus_two = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc(plus_two) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_snapshot_without_match_is_dropped(db, settings) -> None:
    view = await merger(db, settings, StubLiveProvider()).merge(snapshot(home_score=1, away_score=0))
    assert view is None
    async with db.read_session() as session:
        assert await session.scalar(select(func.count()).select_from(MatchORM)) == 0


@pytest.mark.asyncio
async def test_snapshot_updates_match_in_window(db, settings, factory) -> None:
    arsenal = await factory.team("Arsenal FC")
    chelsea = await factory.team("Chelsea FC")
    match = await factory.match(arsenal, chelsea, when=NOW - timedelta(hours=1))

    view = await merger(db, settings, StubLiveProvider()).merge(snapshot(home_score=2, away_score=1))
    assert view is not None
    assert view.match_id == match.id
    assert (view.home_score, view.away_score) == (2, 1)
    assert view.status == MatchStatus.LIVE
    assert view.minute == 67

    async with db.read_session() as session:
        stored = await session.get(MatchORM, match.id)
    assert stored.status == "LIVE"
    assert stored.home_score == 2


@pytest.mark.asyncio
async def test_match_outside_live_window_is_not_touched(db, settings, factory) -> None:
    arsenal = await factory.team("Arsenal FC")
    chelsea = await factory.team("Chelsea FC")
    match = await factory.match(arsenal, chelsea, when=NOW - timedelta(days=2))

    assert await merger(db, settings, StubLiveProvider()).merge(snapshot(home_score=2)) is None
    async with db.read_session() as session:
        stored = await session.get(MatchORM, match.id)
    assert stored.status == "SCHEDULED"
    assert stored.home_score is None


@pytest.mark.asyncio
async def test_missing_score_keeps_stored_score(db, settings, factory) -> None:
    arsenal = await factory.team("Arsenal FC")
    chelsea = await factory.team("Chelsea FC")
    await factory.match(arsenal, chelsea, when=NOW)
    live = merger(db, settings, StubLiveProvider())

    await live.merge(snapshot(home_score=1, away_score=0))
    view = await live.merge(snapshot(status="HT"))
    assert (view.home_score, view.away_score) == (1, 0)


@pytest.mark.asyncio
async def test_get_live_matches_requires_competition_mapping(db, settings, factory) -> None:
    competition = await factory.competition()
    provider = StubLiveProvider([snapshot(home_score=1, away_score=1)])
    live = merger(db, settings, provider)

    assert await live.get_live_matches(competition.id) == []
    assert provider.requested == []
    assert await live.get_live_matches(9999) == []


@pytest.mark.asyncio
async def test_get_live_matches_merges_known_and_drops_unknown(db, settings, factory) -> None:
    competition = await factory.competition()
    await factory.ref(EntityType.COMPETITION, competition.id, Provider.API_FOOTBALL, "39")
    arsenal = await factory.team("Arsenal FC")
    chelsea = await factory.team("Chelsea FC")
    await factory.match(arsenal, chelsea, when=NOW, competition=competition)

    provider = StubLiveProvider([
        snapshot(home_score=1, away_score=0),
        snapshot(home="Leeds United", away="Burnley FC", home_score=0, away_score=0),
    ])
    views = await merger(db, settings, provider).get_live_matches(competition.id)
    assert provider.requested == ["39"]
    assert [(v.home_team, v.away_team) for v in views] == [("Arsenal FC", "Chelsea FC")]
