"""
Match center: a single match with team badges and its prediction.

Used by the match hero endpoints. The prediction is produced on demand
(cached), badges come from the asset service, so a provider outage only
leaves ``logo_url`` empty.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ingest.assets import AssetService
from ingest.normalization.status import as_utc
from predictor.service import PredictionService
from shared.config import Settings, get_settings
from shared.models.domain import MatchHeroView, TeamInfo
from shared.models.enums import MatchStatus
from shared.models.orm import CompetitionORM, MatchORM, TeamORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)

MAX_MINUTE = 90


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchCenter:
    def __init__(
        self,
        db: DatabaseManager,
        predictions: PredictionService,
        assets: AssetService,
        settings: Optional[Settings] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._predictions = predictions
        self._assets = assets
        self._settings = settings or get_settings()
        self._now = now

    async def match_detail(self, match_id: int) -> Optional[MatchHeroView]:
        async with self._db.read_session() as session:
            match = await session.get(MatchORM, match_id)
            if match is None:
                return None
            competition = await self._competition_name(session, match)
        return await self._hero(match, competition)

    async def next_match(self, team_id: int, season_id: Optional[int] = None) -> Optional[MatchHeroView]:
        """Soonest match after now for the team, within the look-ahead window."""
        now = self._now()
        horizon = now + timedelta(days=self._settings.next_match_window_days)
        stmt = (
            select(MatchORM)
            .where(
                or_(MatchORM.home_team_id == team_id, MatchORM.away_team_id == team_id),
                MatchORM.match_date > now,
                MatchORM.match_date <= horizon,
            )
            .order_by(MatchORM.match_date)
            .limit(1)
        )
        if season_id is not None:
            stmt = stmt.where(MatchORM.season_id == season_id)

        async with self._db.read_session() as session:
            match = (await session.scalars(stmt)).unique().first()
            if match is None:
                logger.info("next_match_not_found", team_id=team_id, season_id=season_id)
                return None
            competition = await self._competition_name(session, match)
        return await self._hero(match, competition)

    @staticmethod
    async def _competition_name(session: AsyncSession, match: MatchORM) -> Optional[str]:
        if match.competition_id is None:
            return None
        competition = await session.get(CompetitionORM, match.competition_id)
        return competition.name if competition else None

    async def _hero(self, match: MatchORM, competition: Optional[str]) -> MatchHeroView:
        status = MatchStatus(match.status)
        match_date = as_utc(match.match_date)
        return MatchHeroView(
            match_id=match.id,
            match_date=match_date,
            venue=match.venue,
            home_team=await self._team_info(match.home_team),
            away_team=await self._team_info(match.away_team),
            status=status,
            home_score=match.home_score,
            away_score=match.away_score,
            competition=competition,
            prediction=await self._predictions.get_prediction(match.id),
            current_minute=self._current_minute(status, match_date),
        )

    async def _team_info(self, team: TeamORM) -> TeamInfo:
        assets = await self._assets.team_assets(team.id)
        return TeamInfo(id=team.id, name=team.name, logo_url=assets.logo_url if assets else None)

    def _current_minute(self, status: MatchStatus, kickoff: datetime) -> Optional[int]:
        if status != MatchStatus.LIVE:
            return None
        elapsed = int((self._now() - kickoff).total_seconds() // 60)
        return max(0, min(elapsed, MAX_MINUTE))
