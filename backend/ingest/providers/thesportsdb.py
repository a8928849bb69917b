"""
TheSportsDB provider connector.
Team badges/banners and player photos/cutouts. API key is part of the path.
"""
from __future__ import annotations

from typing import Any, Optional

from ingest.gateway import ProviderGateway
from ingest.providers.base import BaseProvider
from shared.config import Settings, get_settings
from shared.models.domain import AssetDTO
from shared.models.enums import Provider
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)


def _first(data: Any, key: str) -> Optional[dict[str, Any]]:
    """TheSportsDB returns {key: null} or {key: [..]} for searches."""
    if not isinstance(data, dict):
        return None
    items = data.get(key)
    if not items:
        return None
    return items[0]


class TheSportsDBProvider(BaseProvider):
    """TheSportsDB v1 JSON API, media assets only."""

    def __init__(
        self,
        gateway: ProviderGateway,
        settings: Optional[Settings] = None,
        http_client: Optional[ProviderHTTPClient] = None,
    ) -> None:
        settings = settings or get_settings()
        self._api_key = settings.thesportsdb_api_key
        super().__init__(
            name=Provider.THESPORTSDB,
            http_client=http_client or ProviderHTTPClient(
                provider_name=Provider.THESPORTSDB.value,
                base_url=settings.thesportsdb_base_url,
            ),
            gateway=gateway,
            enabled=settings.thesportsdb_enabled,
        )

    async def get_team_assets(self, team_name: str) -> AssetDTO:
        result = await self._guarded("team_assets", lambda: self._fetch_team_assets(team_name), AssetDTO)
        return result.value

    async def get_player_assets(self, player_name: str) -> AssetDTO:
        result = await self._guarded(
            "player_assets", lambda: self._fetch_player_assets(player_name), AssetDTO
        )
        return result.value

    async def _fetch_team_assets(self, team_name: str) -> AssetDTO:
        data = await self._http.get_json(f"/{self._api_key}/searchteams.php", params={"t": team_name})
        team = _first(data, "teams")
        if team is None:
            logger.debug("thesportsdb_team_not_found", team=team_name)
            return AssetDTO()
        return AssetDTO(
            logo_url=team.get("strBadge") or team.get("strTeamBadge"),
            banner_url=team.get("strBanner") or team.get("strTeamBanner"),
        )

    async def _fetch_player_assets(self, player_name: str) -> AssetDTO:
        data = await self._http.get_json(f"/{self._api_key}/searchplayers.php", params={"p": player_name})
        player = _first(data, "player")
        if player is None:
            logger.debug("thesportsdb_player_not_found", player=player_name)
            return AssetDTO()
        return AssetDTO(
            photo_url=player.get("strThumb"),
            cutout_url=player.get("strCutout"),
        )
