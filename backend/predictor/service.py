"""
Prediction pipeline.

Lookup order: result cache, persisted row, generation. Generation asks the
model service when enabled and falls back to a fixed home-advantage heuristic
on any failure, so a prediction can always be produced. Each match gets at
most one persisted prediction: concurrent first requests race on the unique
match_id constraint and the loser reloads the winner's row.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from predictor.client import PredictionModelClient
from shared.config import Settings, get_settings
from shared.models.domain import PredictionRequest, PredictionResponse, PredictionView, TeamStats
from shared.models.enums import PredictionSource, Venue
from shared.models.orm import MatchORM, MatchPredictionORM, StandingORM
from shared.utils.cache import ResultCache
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import PREDICTIONS_GENERATED

logger = get_logger(__name__)


def fallback_prediction() -> PredictionResponse:
    """Fixed home-advantage split; independent of any match input."""
    return PredictionResponse(
        home_win_probability=45.0,
        draw_probability=30.0,
        away_win_probability=25.0,
        predicted_home_score=1.5,
        predicted_away_score=1.0,
        confidence=0.50,
    )


def classify_venue(venue: Optional[str], home_team_name: str) -> Venue:
    if venue and home_team_name and home_team_name.lower() in venue.lower():
        return Venue.HOME
    return Venue.NEUTRAL


class PredictionService:
    def __init__(
        self,
        db: DatabaseManager,
        client: PredictionModelClient,
        cache: ResultCache,
        settings: Optional[Settings] = None,
    ) -> None:
        self._db = db
        self._client = client
        self._cache = cache
        self._settings = settings or get_settings()

    async def get_prediction(self, match_id: int) -> Optional[PredictionView]:
        """Prediction for a match, creating it on first request. None if the match does not exist."""
        return await self._cache.get_or_compute(
            str(match_id),
            lambda: self.load_or_generate(match_id),
            PredictionView,
            self._settings.prediction_cache_ttl_s,
        )

    async def load_or_generate(self, match_id: int) -> Optional[PredictionView]:
        async with self._db.read_session() as session:
            match = await session.get(MatchORM, match_id)
            if match is None:
                return None
            existing = await self._stored(session, match_id)
            if existing is not None:
                return PredictionView.model_validate(existing)
            request = await self._build_request(session, match)

        response, source = await self._generate(request)
        return await self._persist(match_id, response, source)

    @staticmethod
    async def _stored(session: AsyncSession, match_id: int) -> Optional[MatchPredictionORM]:
        return await session.scalar(
            select(MatchPredictionORM).where(MatchPredictionORM.match_id == match_id)
        )

    async def _team_stats(self, session: AsyncSession, match: MatchORM, team_id: int) -> TeamStats:
        if match.competition_id is None or match.season_id is None:
            return TeamStats()
        standing = await session.scalar(
            select(StandingORM).where(
                StandingORM.competition_id == match.competition_id,
                StandingORM.season_id == match.season_id,
                StandingORM.team_id == team_id,
            )
        )
        if standing is None:
            return TeamStats()
        return TeamStats(
            wins=standing.won,
            draws=standing.draw,
            losses=standing.lost,
            goals_for=standing.goals_for,
            goals_against=standing.goals_against,
            form=standing.form or "",
        )

    async def _build_request(self, session: AsyncSession, match: MatchORM) -> PredictionRequest:
        return PredictionRequest(
            match_id=match.id,
            home_team=match.home_team.name,
            away_team=match.away_team.name,
            home_stats=await self._team_stats(session, match, match.home_team_id),
            away_stats=await self._team_stats(session, match, match.away_team_id),
            venue=classify_venue(match.venue, match.home_team.name),
        )

    async def _generate(self, request: PredictionRequest) -> tuple[PredictionResponse, PredictionSource]:
        if not self._settings.prediction_enabled:
            return fallback_prediction(), PredictionSource.FALLBACK
        result = await self._client.predict(request)
        if result.value is None:
            logger.warning(
                "prediction_model_unavailable",
                match_id=request.match_id,
                outcome=result.outcome.value,
            )
            return fallback_prediction(), PredictionSource.FALLBACK
        return result.value, PredictionSource.MODEL

    async def _persist(
        self, match_id: int, response: PredictionResponse, source: PredictionSource
    ) -> PredictionView:
        try:
            async with self._db.unit_of_work() as uow:
                existing = await self._stored(uow.session, match_id)
                if existing is not None:
                    return PredictionView.model_validate(existing)
                row = MatchPredictionORM(match_id=match_id, source=source.value, **response.model_dump())
                uow.session.add(row)
                await uow.flush()
                view = PredictionView.model_validate(row)
        except IntegrityError:
            logger.info("prediction_insert_conflict", match_id=match_id)
            async with self._db.read_session() as session:
                existing = await self._stored(session, match_id)
            if existing is None:
                raise
            return PredictionView.model_validate(existing)

        PREDICTIONS_GENERATED.labels(source=source.value).inc()
        logger.info("prediction_created", match_id=match_id, source=source.value, prediction_id=view.id)
        return view
