"""
API-Football (api-sports.io) provider connector.
Live scores. Free tier: 100 requests/day.
"""
from __future__ import annotations

from typing import Any, Optional

from ingest.gateway import ProviderGateway
from ingest.providers.base import BaseProvider, to_int
from shared.config import Settings, get_settings
from shared.models.domain import LiveMatchDTO, TeamDTO
from shared.models.enums import Provider
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class ApiFootballProvider(BaseProvider):
    """API-Football v3."""

    def __init__(
        self,
        gateway: ProviderGateway,
        settings: Optional[Settings] = None,
        http_client: Optional[ProviderHTTPClient] = None,
    ) -> None:
        settings = settings or get_settings()
        headers: dict[str, str] = {}
        if settings.api_football_api_key:
            headers["x-apisports-key"] = settings.api_football_api_key
        super().__init__(
            name=Provider.API_FOOTBALL,
            http_client=http_client or ProviderHTTPClient(
                provider_name=Provider.API_FOOTBALL.value,
                base_url=settings.api_football_base_url,
                headers=headers,
            ),
            gateway=gateway,
            enabled=settings.api_football_enabled,
        )

    async def get_live_matches(self, competition_ref: str) -> list[LiveMatchDTO]:
        result = await self._guarded("live_matches", lambda: self._fetch_live(competition_ref), list)
        return result.value

    # ── Fetch ───────────────────────────────────────────────────────────

    async def _response_items(self, operation: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        data = await self._http.get_json("/fixtures", params=params)
        if not isinstance(data, dict):
            raise self._bad_payload(operation, "not an object")
        errors = data.get("errors")
        # the API reports quota and auth problems as 200 with a non-empty errors field
        if errors:
            raise self._bad_payload(operation, str(errors))
        items = data.get("response")
        if not isinstance(items, list):
            raise self._bad_payload(operation, "missing 'response'")
        return items

    async def _fetch_live(self, competition_ref: str) -> list[LiveMatchDTO]:
        items = await self._response_items("live_matches", {"live": "all", "league": competition_ref})
        snapshots: list[LiveMatchDTO] = []
        for item in items:
            teams = self._parse_teams(item)
            if teams is None:
                continue
            fixture = item.get("fixture") or {}
            status = fixture.get("status") or {}
            goals = item.get("goals") or {}
            snapshots.append(LiveMatchDTO(
                external_id=str(fixture["id"]) if fixture.get("id") is not None else None,
                home_team=teams[0],
                away_team=teams[1],
                home_score=to_int(goals.get("home")),
                away_score=to_int(goals.get("away")),
                status=status.get("short"),
                minute=to_int(status.get("elapsed")),
            ))
        logger.info("api_football_live_fetched", league=competition_ref, count=len(snapshots))
        return snapshots

    # ── Parsing ─────────────────────────────────────────────────────────

    @staticmethod
    def _parse_teams(item: dict[str, Any]) -> Optional[tuple[TeamDTO, TeamDTO]]:
        teams = item.get("teams") or {}
        parsed = []
        for side in ("home", "away"):
            raw = teams.get(side) or {}
            if not raw.get("name"):
                return None
            parsed.append(TeamDTO(
                external_id=str(raw["id"]) if raw.get("id") is not None else None,
                name=raw["name"],
            ))
        return parsed[0], parsed[1]

