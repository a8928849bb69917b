"""
Fixture sync: provider fixtures -> canonical Match rows.

Matches have no trusted cross-provider id, so an incoming fixture updates the
existing match with the same home/away teams whose date is closest to the
incoming date within the tolerance window; otherwise a new match is inserted.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ingest.errors import ReconciliationConflict
from ingest.normalization.status import as_utc, map_status
from ingest.sync.base import SyncPipeline
from shared.models.domain import FixtureDTO, SyncResult
from shared.models.enums import EntityType
from shared.models.orm import MatchORM
from shared.utils.logging import get_logger
from shared.utils.metrics import SYNC_DURATION, SYNC_ITEMS, atrack_latency

logger = get_logger(__name__)


async def find_match_near(
    session: AsyncSession,
    home_team_id: int,
    away_team_id: int,
    when: datetime,
    window: timedelta,
) -> Optional[MatchORM]:
    """Match between these teams dated within ``when ± window``, closest first."""
    when = as_utc(when)
    candidates = (
        await session.scalars(
            select(MatchORM)
            .where(
                MatchORM.home_team_id == home_team_id,
                MatchORM.away_team_id == away_team_id,
                MatchORM.match_date >= when - window,
                MatchORM.match_date <= when + window,
            )
            .order_by(MatchORM.match_date)
        )
    ).unique().all()
    if not candidates:
        return None
    return min(candidates, key=lambda m: abs(as_utc(m.match_date) - when))


class FixtureSync(SyncPipeline):
    pipeline = "fixtures"

    async def sync(self, competition_id: int, season_id: int) -> SyncResult:
        """
        Pull fixtures for a competition+season and upsert them.

        Raises:
            SyncAborted: competition or season does not exist.
        """
        async with atrack_latency(SYNC_DURATION, pipeline=self.pipeline):
            competition, season = await self._load_scope(competition_id, season_id)
            competition_ref = await self._competition_ref(competition)
            if competition_ref is None:
                return self._skipped(competition_id, season_id, "no_mapping")

            fixtures = await self._provider.get_fixtures(competition_ref, season.name)
            result = SyncResult(
                pipeline=self.pipeline,
                competition_id=competition_id,
                season_id=season_id,
                provider=self._provider.name,
                fetched=len(fixtures),
            )
            for fixture in fixtures:
                try:
                    await self.upsert(fixture, competition_id, season_id)
                    result.upserted += 1
                    SYNC_ITEMS.labels(pipeline=self.pipeline, result="upserted").inc()
                except (ReconciliationConflict, SQLAlchemyError) as exc:
                    result.failed += 1
                    SYNC_ITEMS.labels(pipeline=self.pipeline, result="failed").inc()
                    logger.error(
                        "fixture_upsert_failed",
                        fixture=fixture.external_id,
                        home=fixture.home_team.name,
                        away=fixture.away_team.name,
                        error=str(exc),
                    )

        logger.info(
            "fixtures_synced",
            competition=competition.name,
            season=season.name,
            fetched=result.fetched,
            upserted=result.upserted,
            failed=result.failed,
        )
        return result

    async def upsert(self, fixture: FixtureDTO, competition_id: int, season_id: int) -> MatchORM:
        provider = self._provider.name
        home = await self._reconciler.find_or_create(
            EntityType.TEAM, provider, fixture.home_team.external_id, fixture.home_team
        )
        away = await self._reconciler.find_or_create(
            EntityType.TEAM, provider, fixture.away_team.external_id, fixture.away_team
        )
        window = timedelta(hours=self._settings.fixture_match_window_h)

        async with self._db.unit_of_work() as uow:
            match = await find_match_near(uow.session, home.id, away.id, fixture.match_date, window)
            if match is None:
                match = MatchORM(home_team_id=home.id, away_team_id=away.id)
                uow.session.add(match)
            match.competition_id = competition_id
            match.season_id = season_id
            match.match_date = as_utc(fixture.match_date)
            match.status = map_status(fixture.status).value
            match.home_score = fixture.home_score
            match.away_score = fixture.away_score
            if fixture.venue:
                match.venue = fixture.venue
            if fixture.referee:
                match.referee = fixture.referee
            if fixture.matchday is not None:
                match.matchday = fixture.matchday
            await uow.flush()
        return match
