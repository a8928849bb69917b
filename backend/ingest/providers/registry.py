"""
Provider registry: owns the connector instances and their HTTP lifecycles.

Roles are fixed: fixtures and standings come from football-data.org, live
scores from API-Football, media assets from TheSportsDB.
"""
from __future__ import annotations

from typing import Optional

from ingest.gateway import ProviderGateway
from ingest.providers.api_football import ApiFootballProvider
from ingest.providers.base import BaseProvider
from ingest.providers.football_data import FootballDataProvider
from ingest.providers.thesportsdb import TheSportsDBProvider
from shared.config import Settings, get_settings
from shared.models.enums import Provider
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class ProviderRegistry:
    """Connector lookup by provider and by role."""

    FIXTURES = Provider.FOOTBALL_DATA
    STANDINGS = Provider.FOOTBALL_DATA
    LIVE = Provider.API_FOOTBALL
    ASSETS = Provider.THESPORTSDB

    def __init__(self, providers: dict[Provider, BaseProvider]) -> None:
        self._providers = providers

    @classmethod
    def from_settings(cls, gateway: ProviderGateway, settings: Optional[Settings] = None) -> "ProviderRegistry":
        settings = settings or get_settings()
        return cls({
            Provider.API_FOOTBALL: ApiFootballProvider(gateway, settings),
            Provider.FOOTBALL_DATA: FootballDataProvider(gateway, settings),
            Provider.THESPORTSDB: TheSportsDBProvider(gateway, settings),
        })

    @property
    def providers(self) -> dict[Provider, BaseProvider]:
        return self._providers

    def get(self, name: Provider) -> BaseProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise KeyError(f"provider not registered: {name.value}")
        return provider

    @property
    def fixtures(self) -> BaseProvider:
        return self.get(self.FIXTURES)

    @property
    def standings(self) -> BaseProvider:
        return self.get(self.STANDINGS)

    @property
    def live(self) -> BaseProvider:
        return self.get(self.LIVE)

    @property
    def assets(self) -> BaseProvider:
        return self.get(self.ASSETS)

    async def start_all(self) -> None:
        for provider in self._providers.values():
            await provider.start()
        logger.info("providers_started", providers=[p.value for p in self._providers])

    async def close_all(self) -> None:
        for provider in self._providers.values():
            try:
                await provider.close()
            except Exception as exc:
                logger.warning("provider_close_failed", provider=provider.name.value, error=str(exc))
