"""
Sync REST endpoints.

POST /v1/sync/fixtures   Fixture sync for one competition and season.
POST /v1/sync/standings  Standings sync for one competition and season.
POST /v1/sync/all        Fixtures and standings for every competition in the current season.
GET  /v1/providers       Breaker state and remaining quota per provider.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_gateway, get_ingestion
from ingest.gateway import ProviderGateway
from ingest.service import IngestionService
from shared.models.domain import SyncResult

router = APIRouter(prefix="/v1", tags=["sync"])


@router.post("/sync/fixtures", response_model=SyncResult)
async def sync_fixtures(
    competition_id: int = Query(..., ge=1),
    season_id: int = Query(..., ge=1),
    ingestion: IngestionService = Depends(get_ingestion),
) -> SyncResult:
    """Pull fixtures from the fixtures provider. A competition without a provider mapping is skipped, not failed."""
    return await ingestion.sync_fixtures(competition_id, season_id)


@router.post("/sync/standings", response_model=SyncResult)
async def sync_standings(
    competition_id: int = Query(..., ge=1),
    season_id: int = Query(..., ge=1),
    ingestion: IngestionService = Depends(get_ingestion),
) -> SyncResult:
    return await ingestion.sync_standings(competition_id, season_id)


@router.post("/sync/all", response_model=list[SyncResult])
async def sync_all(ingestion: IngestionService = Depends(get_ingestion)) -> list[SyncResult]:
    return await ingestion.sync_all()


@router.get("/providers")
async def provider_status(gateway: ProviderGateway = Depends(get_gateway)) -> dict[str, Any]:
    return gateway.stats()
