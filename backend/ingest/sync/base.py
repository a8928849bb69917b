"""Shared plumbing for the competition/season sync pipelines."""
from __future__ import annotations

from typing import Optional

from ingest.errors import SyncAborted
from ingest.providers.base import BaseProvider
from ingest.reconciliation.reconciler import EntityReconciler
from shared.config import Settings, get_settings
from shared.models.domain import SyncResult
from shared.models.enums import EntityType
from shared.models.orm import CompetitionORM, SeasonORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class SyncPipeline:
    """Resolves the sync scope and the provider's competition id before fetching."""

    pipeline = "base"

    def __init__(
        self,
        db: DatabaseManager,
        reconciler: EntityReconciler,
        provider: BaseProvider,
        settings: Optional[Settings] = None,
    ) -> None:
        self._db = db
        self._reconciler = reconciler
        self._provider = provider
        self._settings = settings or get_settings()

    async def _load_scope(self, competition_id: int, season_id: int) -> tuple[CompetitionORM, SeasonORM]:
        async with self._db.read_session() as session:
            competition = await session.get(CompetitionORM, competition_id)
            season = await session.get(SeasonORM, season_id)
        if competition is None:
            raise SyncAborted(f"competition {competition_id} not found")
        if season is None:
            raise SyncAborted(f"season {season_id} not found")
        return competition, season

    async def _competition_ref(self, competition: CompetitionORM) -> Optional[str]:
        return await self._reconciler.external_id(
            EntityType.COMPETITION, competition.id, self._provider.name
        )

    def _skipped(self, competition_id: int, season_id: int, reason: str) -> SyncResult:
        logger.warning(
            "sync_skipped",
            pipeline=self.pipeline,
            competition_id=competition_id,
            season_id=season_id,
            provider=self._provider.name.value,
            reason=reason,
        )
        return SyncResult(
            pipeline=self.pipeline,
            competition_id=competition_id,
            season_id=season_id,
            status="skipped",
            reason=reason,
            provider=self._provider.name,
        )
