"""
Team and player media assets from TheSportsDB.

Lookups are cached by provider+name; non-empty results are also stored so the
last known URLs survive provider outages.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from ingest.providers.base import BaseProvider
from shared.config import Settings, get_settings
from shared.models.domain import AssetDTO
from shared.models.orm import PlayerAssetORM, PlayerORM, TeamAssetORM, TeamORM
from shared.utils.cache import ResultCache
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class AssetService:
    def __init__(
        self,
        db: DatabaseManager,
        provider: BaseProvider,
        cache: ResultCache,
        settings: Optional[Settings] = None,
    ) -> None:
        self._db = db
        self._provider = provider
        self._cache = cache
        self._settings = settings or get_settings()

    def _key(self, kind: str, name: str) -> str:
        return f"{self._provider.name.value}:{kind}:{name.strip().lower()}"

    async def _lookup(self, kind: str, name: str) -> AssetDTO:
        async def compute() -> Optional[AssetDTO]:
            if kind == "team":
                assets = await self._provider.get_team_assets(name)
            else:
                assets = await self._provider.get_player_assets(name)
            # empty means "no data yet"; keep asking on the next call
            return None if assets.is_empty else assets

        assets = await self._cache.get_or_compute(
            self._key(kind, name), compute, AssetDTO, self._settings.asset_cache_ttl_s
        )
        return assets or AssetDTO()

    async def team_assets(self, team_id: int) -> Optional[AssetDTO]:
        """Assets for a team, or None if the team does not exist."""
        async with self._db.read_session() as session:
            team = await session.get(TeamORM, team_id)
        if team is None:
            return None
        assets = await self._lookup("team", team.name)
        if not assets.is_empty:
            await self._store_team(team_id, assets)
            return assets
        return await self._stored_team(team_id) or assets

    async def player_assets(self, player_id: int) -> Optional[AssetDTO]:
        async with self._db.read_session() as session:
            player = await session.get(PlayerORM, player_id)
        if player is None:
            return None
        assets = await self._lookup("player", player.name)
        if not assets.is_empty:
            await self._store_player(player_id, assets)
        return assets

    async def refresh_all_team_assets(self) -> int:
        """Refresh every team's assets; returns how many teams got non-empty assets."""
        async with self._db.read_session() as session:
            team_ids = list((await session.scalars(select(TeamORM.id).order_by(TeamORM.id))).all())
        refreshed = 0
        for team_id in team_ids:
            assets = await self.team_assets(team_id)
            if assets is not None and not assets.is_empty:
                refreshed += 1
        logger.info("team_assets_refreshed", teams=len(team_ids), refreshed=refreshed)
        return refreshed

    async def _stored_team(self, team_id: int) -> Optional[AssetDTO]:
        async with self._db.read_session() as session:
            row = await session.scalar(
                select(TeamAssetORM).where(
                    TeamAssetORM.team_id == team_id,
                    TeamAssetORM.provider == self._provider.name.value,
                )
            )
        if row is None:
            return None
        return AssetDTO(logo_url=row.logo_url, banner_url=row.banner_url)

    async def _store_team(self, team_id: int, assets: AssetDTO) -> None:
        async with self._db.unit_of_work() as uow:
            row = await uow.session.scalar(
                select(TeamAssetORM).where(
                    TeamAssetORM.team_id == team_id,
                    TeamAssetORM.provider == self._provider.name.value,
                )
            )
            if row is None:
                row = TeamAssetORM(team_id=team_id, provider=self._provider.name.value)
                uow.session.add(row)
            row.logo_url = assets.logo_url
            row.banner_url = assets.banner_url

    async def _store_player(self, player_id: int, assets: AssetDTO) -> None:
        async with self._db.unit_of_work() as uow:
            row = await uow.session.scalar(
                select(PlayerAssetORM).where(
                    PlayerAssetORM.player_id == player_id,
                    PlayerAssetORM.provider == self._provider.name.value,
                )
            )
            if row is None:
                row = PlayerAssetORM(player_id=player_id, provider=self._provider.name.value)
                uow.session.add(row)
            row.photo_url = assets.photo_url
            row.cutout_url = assets.cutout_url
