"""Shared fixtures: settings on a throwaway SQLite file, a fake clock and row factories."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import pytest
import pytest_asyncio

from shared.config import Settings
from shared.models.enums import EntityType, Provider
from shared.models.orm import CompetitionORM, ExternalRefORM, MatchORM, SeasonORM, StandingORM, TeamORM
from shared.utils.database import DatabaseManager

KICKOFF = datetime(2024, 8, 17, 14, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'scoreline.db'}",
        scheduler_enabled=False,
        prediction_enabled=False,
        provider_http_retries=1,
    )


@pytest_asyncio.fixture
async def db(settings: Settings) -> AsyncIterator[DatabaseManager]:
    manager = DatabaseManager(settings)
    await manager.connect()
    await manager.create_all()
    yield manager
    await manager.disconnect()


class Factory:
    """Inserts canonical rows directly, bypassing reconciliation."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def _add(self, row):
        async with self._db.unit_of_work() as uow:
            uow.session.add(row)
            await uow.flush()
        return row

    async def competition(self, name: str = "Premier League", code: Optional[str] = "PL") -> CompetitionORM:
        return await self._add(CompetitionORM(name=name, code=code))

    async def season(self, name: str = "2024", is_current: bool = True) -> SeasonORM:
        return await self._add(SeasonORM(name=name, is_current=is_current))

    async def team(self, name: str) -> TeamORM:
        return await self._add(TeamORM(name=name))

    async def ref(self, entity_type: EntityType, entity_id: int, provider: Provider, external_id: str) -> ExternalRefORM:
        return await self._add(ExternalRefORM(
            entity_type=entity_type.value,
            entity_id=entity_id,
            provider=provider.value,
            external_id=external_id,
        ))

    async def match(
        self,
        home: TeamORM,
        away: TeamORM,
        when: datetime = KICKOFF,
        status: str = "SCHEDULED",
        competition: Optional[CompetitionORM] = None,
        season: Optional[SeasonORM] = None,
        venue: Optional[str] = None,
    ) -> MatchORM:
        return await self._add(MatchORM(
            home_team_id=home.id,
            away_team_id=away.id,
            match_date=when,
            status=status,
            competition_id=competition.id if competition else None,
            season_id=season.id if season else None,
            venue=venue,
        ))

    async def standing(
        self, competition: CompetitionORM, season: SeasonORM, team: TeamORM, position: int, **stats: int
    ) -> StandingORM:
        return await self._add(StandingORM(
            competition_id=competition.id,
            season_id=season.id,
            team_id=team.id,
            position=position,
            **stats,
        ))


@pytest.fixture
def factory(db: DatabaseManager) -> Factory:
    return Factory(db)
