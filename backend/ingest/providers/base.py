"""
Abstract base class for all sports data providers.

A provider owns its HTTP client and payload parsing; every public fetch goes
through the shared gateway with an operation-specific fallback, so callers
never see provider exceptions.
"""
from __future__ import annotations

import abc
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ingest.errors import ProviderError
from ingest.gateway import GatewayResult, ProviderGateway
from shared.models.domain import AssetDTO, FixtureDTO, LiveMatchDTO, StandingDTO
from shared.models.enums import GatewayOutcome, Provider
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def parse_datetime(raw: Optional[str]) -> Optional[datetime]:
    """ISO-8601 (with or without trailing Z) to an aware UTC datetime."""
    if not raw:
        return None
    try:
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_int(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class BaseProvider(abc.ABC):
    """
    Base class for provider connectors.

    Subclasses implement the ``_fetch_*`` coroutines for the capabilities they
    support; the public methods wrap them in the gateway.
    """

    def __init__(
        self,
        name: Provider,
        http_client: ProviderHTTPClient,
        gateway: ProviderGateway,
        enabled: bool = True,
    ) -> None:
        self._name = name
        self._http = http_client
        self._gateway = gateway
        self._enabled = enabled

    @property
    def name(self) -> Provider:
        return self._name

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def start(self) -> None:
        await self._http.start()
        logger.info("provider_started", provider=self._name.value, enabled=self._enabled)

    async def close(self) -> None:
        await self._http.close()

    async def _guarded(
        self,
        operation: str,
        func: Callable[[], Awaitable[T]],
        fallback: Callable[[], T],
    ) -> GatewayResult[T]:
        if not self._enabled:
            logger.debug("provider_disabled", provider=self._name.value, operation=operation)
            return GatewayResult(
                value=fallback(),
                outcome=GatewayOutcome.DISABLED,
                error=ProviderError(self._name.value, "provider disabled"),
            )
        return await self._gateway.call(
            func, fallback=fallback, operation=operation, provider=self._name
        )

    def _bad_payload(self, operation: str, detail: str) -> ProviderError:
        return ProviderError(self._name.value, f"unexpected {operation} payload: {detail}")

    # ── Capabilities (empty by default) ─────────────────────────────────

    async def get_fixtures(self, competition_ref: str, season_ref: str) -> list[FixtureDTO]:
        return []

    async def get_live_matches(self, competition_ref: str) -> list[LiveMatchDTO]:
        return []

    async def get_standings(self, competition_ref: str, season_ref: str) -> list[StandingDTO]:
        return []

    async def get_team_assets(self, team_name: str) -> AssetDTO:
        return AssetDTO()

    async def get_player_assets(self, player_name: str) -> AssetDTO:
        return AssetDTO()
