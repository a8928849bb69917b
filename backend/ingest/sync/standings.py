"""Standings sync: provider league table -> Standing rows unique per (competition, season, team)."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ingest.errors import ReconciliationConflict
from ingest.sync.base import SyncPipeline
from shared.models.domain import StandingDTO, StandingView, SyncResult
from shared.models.enums import EntityType
from shared.models.orm import StandingORM
from shared.utils.logging import get_logger
from shared.utils.metrics import SYNC_DURATION, SYNC_ITEMS, atrack_latency

logger = get_logger(__name__)

_STAT_FIELDS = (
    "position",
    "played",
    "won",
    "draw",
    "lost",
    "points",
    "goals_for",
    "goals_against",
    "goal_difference",
    "form",
)


class StandingsSync(SyncPipeline):
    pipeline = "standings"

    async def sync(self, competition_id: int, season_id: int) -> SyncResult:
        async with atrack_latency(SYNC_DURATION, pipeline=self.pipeline):
            competition, season = await self._load_scope(competition_id, season_id)
            competition_ref = await self._competition_ref(competition)
            if competition_ref is None:
                return self._skipped(competition_id, season_id, "no_mapping")

            rows = await self._provider.get_standings(competition_ref, season.name)
            result = SyncResult(
                pipeline=self.pipeline,
                competition_id=competition_id,
                season_id=season_id,
                provider=self._provider.name,
                fetched=len(rows),
            )
            for row in rows:
                try:
                    await self.upsert(row, competition_id, season_id)
                    result.upserted += 1
                    SYNC_ITEMS.labels(pipeline=self.pipeline, result="upserted").inc()
                except (ReconciliationConflict, SQLAlchemyError) as exc:
                    result.failed += 1
                    SYNC_ITEMS.labels(pipeline=self.pipeline, result="failed").inc()
                    logger.error("standing_upsert_failed", team=row.team.name, error=str(exc))

        logger.info(
            "standings_synced",
            competition=competition.name,
            season=season.name,
            upserted=result.upserted,
            failed=result.failed,
        )
        return result

    async def upsert(self, row: StandingDTO, competition_id: int, season_id: int) -> StandingORM:
        team = await self._reconciler.find_or_create(
            EntityType.TEAM, self._provider.name, row.team.external_id, row.team
        )
        async with self._db.unit_of_work() as uow:
            standing = await uow.session.scalar(
                select(StandingORM).where(
                    StandingORM.competition_id == competition_id,
                    StandingORM.season_id == season_id,
                    StandingORM.team_id == team.id,
                )
            )
            if standing is None:
                standing = StandingORM(competition_id=competition_id, season_id=season_id, team_id=team.id)
                uow.session.add(standing)
            for field in _STAT_FIELDS:
                setattr(standing, field, getattr(row, field))
            await uow.flush()
        return standing

    async def table(self, competition_id: int, season_id: int) -> list[StandingView]:
        """Stored table ordered by position."""
        async with self._db.read_session() as session:
            standings = (
                await session.scalars(
                    select(StandingORM)
                    .where(StandingORM.competition_id == competition_id, StandingORM.season_id == season_id)
                    .order_by(StandingORM.position)
                )
            ).unique().all()
        return [
            StandingView(
                team_id=s.team_id,
                team_name=s.team.name,
                **{f: getattr(s, f) for f in _STAT_FIELDS},
            )
            for s in standings
        ]
