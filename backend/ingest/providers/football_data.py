"""
Football-Data.org provider connector (v4 API, X-Auth-Token).
Fixtures and league tables. Free tier: 10 requests/min.
"""
from __future__ import annotations

from typing import Any, Optional

from ingest.gateway import ProviderGateway
from ingest.providers.base import BaseProvider, parse_datetime, to_int
from shared.config import Settings, get_settings
from shared.models.domain import FixtureDTO, StandingDTO, TeamDTO
from shared.models.enums import Provider
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class FootballDataProvider(BaseProvider):
    """Football-Data.org v4 API (soccer only)."""

    def __init__(
        self,
        gateway: ProviderGateway,
        settings: Optional[Settings] = None,
        http_client: Optional[ProviderHTTPClient] = None,
    ) -> None:
        settings = settings or get_settings()
        headers: dict[str, str] = {}
        if settings.football_data_api_key:
            headers["X-Auth-Token"] = settings.football_data_api_key
        super().__init__(
            name=Provider.FOOTBALL_DATA,
            http_client=http_client or ProviderHTTPClient(
                provider_name=Provider.FOOTBALL_DATA.value,
                base_url=settings.football_data_base_url,
                headers=headers,
            ),
            gateway=gateway,
            enabled=settings.football_data_enabled,
        )

    # ── Public ──────────────────────────────────────────────────────────

    async def get_fixtures(self, competition_ref: str, season_ref: str) -> list[FixtureDTO]:
        result = await self._guarded(
            "fixtures", lambda: self._fetch_fixtures(competition_ref, season_ref), list
        )
        return result.value

    async def get_standings(self, competition_ref: str, season_ref: str) -> list[StandingDTO]:
        result = await self._guarded(
            "standings", lambda: self._fetch_standings(competition_ref, season_ref), list
        )
        return result.value

    # ── Fetch ───────────────────────────────────────────────────────────

    async def _fetch_fixtures(self, competition_ref: str, season_ref: str) -> list[FixtureDTO]:
        data = await self._http.get_json(
            f"/competitions/{competition_ref}/matches", params={"season": season_ref}
        )
        matches = data.get("matches") if isinstance(data, dict) else None
        if matches is None:
            raise self._bad_payload("fixtures", "missing 'matches'")
        fixtures: list[FixtureDTO] = []
        for raw in matches:
            fixture = self._parse_match(raw)
            if fixture is not None:
                fixtures.append(fixture)
        logger.info(
            "football_data_fixtures_fetched",
            competition=competition_ref,
            season=season_ref,
            count=len(fixtures),
        )
        return fixtures

    async def _fetch_standings(self, competition_ref: str, season_ref: str) -> list[StandingDTO]:
        data = await self._http.get_json(
            f"/competitions/{competition_ref}/standings", params={"season": season_ref}
        )
        tables = data.get("standings") if isinstance(data, dict) else None
        if tables is None:
            raise self._bad_payload("standings", "missing 'standings'")
        rows: list[StandingDTO] = []
        for table in tables:
            # HOME/AWAY splits would overwrite the overall table
            if table.get("type") != "TOTAL":
                continue
            for row in table.get("table") or []:
                team = self._parse_team(row.get("team"))
                if team is None:
                    continue
                rows.append(StandingDTO(
                    team=team,
                    position=to_int(row.get("position")) or 0,
                    played=to_int(row.get("playedGames")) or 0,
                    won=to_int(row.get("won")) or 0,
                    draw=to_int(row.get("draw")) or 0,
                    lost=to_int(row.get("lost")) or 0,
                    points=to_int(row.get("points")) or 0,
                    goals_for=to_int(row.get("goalsFor")) or 0,
                    goals_against=to_int(row.get("goalsAgainst")) or 0,
                    goal_difference=to_int(row.get("goalDifference")) or 0,
                    form=row.get("form"),
                ))
        return rows

    # ── Parsing ─────────────────────────────────────────────────────────

    @staticmethod
    def _parse_team(raw: Any) -> Optional[TeamDTO]:
        if not isinstance(raw, dict) or not raw.get("name"):
            return None
        return TeamDTO(
            external_id=str(raw["id"]) if raw.get("id") is not None else None,
            name=raw["name"],
            short_name=raw.get("shortName") or raw.get("tla"),
            stadium=raw.get("venue"),
        )

    def _parse_match(self, raw: Any) -> Optional[FixtureDTO]:
        if not isinstance(raw, dict):
            return None
        home = self._parse_team(raw.get("homeTeam"))
        away = self._parse_team(raw.get("awayTeam"))
        match_date = parse_datetime(raw.get("utcDate"))
        if home is None or away is None or match_date is None:
            logger.debug("football_data_match_skipped", match_id=raw.get("id"))
            return None
        full_time = (raw.get("score") or {}).get("fullTime") or {}
        referees = raw.get("referees") or []
        return FixtureDTO(
            external_id=str(raw.get("id")) if raw.get("id") is not None else None,
            home_team=home,
            away_team=away,
            match_date=match_date,
            status=raw.get("status"),
            home_score=to_int(full_time.get("home")),
            away_score=to_int(full_time.get("away")),
            venue=raw.get("venue"),
            referee=referees[0].get("name") if referees else None,
            matchday=to_int(raw.get("matchday")),
        )
