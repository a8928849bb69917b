"""
Ingestion orchestration.

Wires the provider gateway, reconciler and pipelines together and exposes the
operations driven by the scheduler and the admin routes.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from sqlalchemy import select

from ingest.assets import AssetService
from ingest.errors import SyncAborted
from ingest.gateway import ProviderGateway
from ingest.live import LiveMatchMerger
from ingest.providers.registry import ProviderRegistry
from ingest.reconciliation.reconciler import EntityReconciler
from ingest.sync.fixtures import FixtureSync
from ingest.sync.standings import StandingsSync
from shared.config import Settings, get_settings
from shared.models.domain import LiveMatchView, SyncResult
from shared.models.orm import CompetitionORM, SeasonORM
from shared.utils.cache import ResultCache
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# Retry connection on startup (e.g. Postgres not ready yet in Docker)
CONNECT_RETRY_ATTEMPTS = 10
CONNECT_RETRY_BASE_DELAY_S = 2.0


async def connect_with_retry(connect_fn: Callable[[], Awaitable[None]], name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == CONNECT_RETRY_ATTEMPTS:
                raise
            delay = CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


class IngestionService:
    """Entry point for sync, live and asset operations."""

    def __init__(
        self,
        db: DatabaseManager,
        registry: ProviderRegistry,
        reconciler: EntityReconciler,
        asset_cache: ResultCache,
        settings: Optional[Settings] = None,
    ) -> None:
        self._db = db
        self._registry = registry
        self._reconciler = reconciler
        self._settings = settings or get_settings()
        self.fixtures = FixtureSync(db, reconciler, registry.fixtures, self._settings)
        self.standings = StandingsSync(db, reconciler, registry.standings, self._settings)
        self.live = LiveMatchMerger(db, reconciler, registry.live, self._settings)
        self.assets = AssetService(db, registry.assets, asset_cache, self._settings)

    @classmethod
    def build(
        cls,
        db: DatabaseManager,
        gateway: ProviderGateway,
        asset_cache: ResultCache,
        settings: Optional[Settings] = None,
    ) -> "IngestionService":
        settings = settings or get_settings()
        return cls(
            db=db,
            registry=ProviderRegistry.from_settings(gateway, settings),
            reconciler=EntityReconciler(db, max_attempts=settings.reconcile_max_attempts),
            asset_cache=asset_cache,
            settings=settings,
        )

    @property
    def reconciler(self) -> EntityReconciler:
        return self._reconciler

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    # ── Exposed operations ──────────────────────────────────────────────

    async def sync_fixtures(self, competition_id: int, season_id: int) -> SyncResult:
        return await self.fixtures.sync(competition_id, season_id)

    async def sync_standings(self, competition_id: int, season_id: int) -> SyncResult:
        return await self.standings.sync(competition_id, season_id)

    async def get_live_matches(self, competition_id: int) -> list[LiveMatchView]:
        return await self.live.get_live_matches(competition_id)

    # ── Scheduled runs ──────────────────────────────────────────────────

    async def _competition_ids(self) -> list[int]:
        async with self._db.read_session() as session:
            return list((await session.scalars(select(CompetitionORM.id).order_by(CompetitionORM.id))).all())

    async def current_season(self) -> SeasonORM:
        async with self._db.read_session() as session:
            season = await session.scalar(select(SeasonORM).where(SeasonORM.is_current.is_(True)))
        if season is None:
            raise SyncAborted("no current season configured")
        return season

    async def sync_all(self) -> list[SyncResult]:
        """
        Fixtures then standings for every competition in the current season.

        Raises:
            SyncAborted: no season is flagged current; nothing is synced.
        """
        season = await self.current_season()
        results: list[SyncResult] = []
        for competition_id in await self._competition_ids():
            try:
                results.append(await self.sync_fixtures(competition_id, season.id))
                results.append(await self.sync_standings(competition_id, season.id))
            except SyncAborted as exc:
                logger.error("competition_sync_aborted", competition_id=competition_id, error=str(exc))
        logger.info(
            "sync_all_completed",
            season=season.name,
            runs=len(results),
            skipped=sum(1 for r in results if r.status == "skipped"),
        )
        return results

    async def sync_live(self) -> int:
        merged = 0
        for competition_id in await self._competition_ids():
            merged += len(await self.get_live_matches(competition_id))
        return merged

    async def refresh_assets(self) -> int:
        return await self.assets.refresh_all_team_assets()
