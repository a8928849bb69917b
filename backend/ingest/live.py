"""
Live match merger.

Live snapshots carry scores and a provider status code but no competition or
season, so they only ever update a match that a fixture sync already created.
A snapshot with no canonical match near "now" is dropped.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ingest.errors import ReconciliationConflict
from ingest.normalization.status import as_utc, map_status
from ingest.providers.base import BaseProvider
from ingest.reconciliation.reconciler import EntityReconciler
from ingest.sync.fixtures import find_match_near
from shared.config import Settings, get_settings
from shared.models.domain import LiveMatchDTO, LiveMatchView
from shared.models.enums import EntityType
from shared.models.orm import CompetitionORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import LIVE_MERGES

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LiveMatchMerger:
    """Folds live snapshots from the live-score provider into canonical matches."""

    def __init__(
        self,
        db: DatabaseManager,
        reconciler: EntityReconciler,
        provider: BaseProvider,
        settings: Optional[Settings] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._reconciler = reconciler
        self._provider = provider
        self._settings = settings or get_settings()
        self._now = now

    async def get_live_matches(self, competition_id: int) -> list[LiveMatchView]:
        """Fetch live snapshots for a competition and merge every one that matches a known fixture."""
        async with self._db.read_session() as session:
            competition = await session.get(CompetitionORM, competition_id)
        if competition is None:
            return []

        competition_ref = await self._reconciler.external_id(
            EntityType.COMPETITION, competition_id, self._provider.name
        )
        if competition_ref is None:
            logger.warning(
                "live_sync_skipped",
                competition_id=competition_id,
                provider=self._provider.name.value,
                reason="no_mapping",
            )
            return []

        snapshots = await self._provider.get_live_matches(competition_ref)
        merged: list[LiveMatchView] = []
        for snapshot in snapshots:
            try:
                view = await self.merge(snapshot)
            except (ReconciliationConflict, SQLAlchemyError) as exc:
                LIVE_MERGES.labels(result="failed").inc()
                logger.error(
                    "live_merge_failed",
                    home=snapshot.home_team.name,
                    away=snapshot.away_team.name,
                    error=str(exc),
                )
                continue
            if view is not None:
                merged.append(view)

        logger.info(
            "live_matches_merged",
            competition_id=competition_id,
            received=len(snapshots),
            merged=len(merged),
        )
        return merged

    async def merge(self, snapshot: LiveMatchDTO) -> Optional[LiveMatchView]:
        """Apply one snapshot. Returns None when no canonical match is within the live window."""
        provider = self._provider.name
        home = await self._reconciler.find_or_create(
            EntityType.TEAM, provider, snapshot.home_team.external_id, snapshot.home_team
        )
        away = await self._reconciler.find_or_create(
            EntityType.TEAM, provider, snapshot.away_team.external_id, snapshot.away_team
        )
        window = timedelta(hours=self._settings.live_match_window_h)

        async with self._db.unit_of_work() as uow:
            match = await find_match_near(uow.session, home.id, away.id, self._now(), window)
            if match is None:
                LIVE_MERGES.labels(result="dropped").inc()
                logger.info(
                    "live_snapshot_dropped",
                    home=home.name,
                    away=away.name,
                    external_id=snapshot.external_id,
                )
                return None

            status = map_status(snapshot.status)
            if snapshot.home_score is not None:
                match.home_score = snapshot.home_score
            if snapshot.away_score is not None:
                match.away_score = snapshot.away_score
            match.status = status.value
            await uow.flush()
            match_id, match_date = match.id, as_utc(match.match_date)
            home_score, away_score = match.home_score, match.away_score

        LIVE_MERGES.labels(result="merged").inc()
        return LiveMatchView(
            match_id=match_id,
            home_team=home.name,
            away_team=away.name,
            home_score=home_score,
            away_score=away_score,
            status=status,
            minute=snapshot.minute,
            match_date=match_date,
        )
