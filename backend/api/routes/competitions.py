"""
Competition REST endpoints.

GET /v1/competitions/{id}/live       Live matches merged into canonical records.
GET /v1/competitions/{id}/standings  Stored standings table.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_ingestion
from ingest.service import IngestionService
from shared.models.domain import LiveMatchView, StandingView

router = APIRouter(prefix="/v1/competitions", tags=["competitions"])


@router.get("/{competition_id}/live", response_model=list[LiveMatchView])
async def live_matches(
    competition_id: int,
    ingestion: IngestionService = Depends(get_ingestion),
) -> list[LiveMatchView]:
    """
    Live matches for a competition.

    Snapshots that cannot be tied to a stored fixture are dropped; an
    unknown or unmapped competition yields an empty list.
    """
    return await ingestion.get_live_matches(competition_id)


@router.get("/{competition_id}/standings", response_model=list[StandingView])
async def standings(
    competition_id: int,
    season_id: Optional[int] = Query(None, ge=1),
    ingestion: IngestionService = Depends(get_ingestion),
) -> list[StandingView]:
    if season_id is None:
        season_id = (await ingestion.current_season()).id
    table = await ingestion.standings.table(competition_id, season_id)
    if not table:
        raise HTTPException(status_code=404, detail="No standings for this competition and season")
    return table
