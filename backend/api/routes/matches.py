"""
Match and team REST endpoints.

GET /v1/matches/next?team_id=&season_id=  Team's next match within the look-ahead window.
GET /v1/matches/{id}                      Match with team badges and prediction.
GET /v1/matches/{id}/prediction           Outcome prediction, generated on first request.
GET /v1/teams/{id}/assets                 Logo and banner URLs.
GET /v1/players/{id}/assets               Photo and cutout URLs.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_ingestion, get_match_center, get_predictions
from api.match_center import MatchCenter
from ingest.service import IngestionService
from predictor.service import PredictionService
from shared.models.domain import AssetDTO, MatchHeroView, PredictionView

router = APIRouter(prefix="/v1", tags=["matches"])


# Declared before /matches/{match_id} so "next" is not parsed as an id
@router.get("/matches/next", response_model=MatchHeroView)
async def next_match(
    team_id: int = Query(..., ge=1),
    season_id: Optional[int] = Query(None, ge=1),
    match_center: MatchCenter = Depends(get_match_center),
) -> MatchHeroView:
    hero = await match_center.next_match(team_id, season_id)
    if hero is None:
        raise HTTPException(status_code=404, detail="No upcoming match")
    return hero


@router.get("/matches/{match_id}", response_model=MatchHeroView)
async def match_detail(
    match_id: int,
    match_center: MatchCenter = Depends(get_match_center),
) -> MatchHeroView:
    hero = await match_center.match_detail(match_id)
    if hero is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return hero


@router.get("/matches/{match_id}/prediction", response_model=PredictionView)
async def match_prediction(
    match_id: int,
    predictions: PredictionService = Depends(get_predictions),
) -> PredictionView:
    prediction = await predictions.get_prediction(match_id)
    if prediction is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return prediction


@router.get("/teams/{team_id}/assets", response_model=AssetDTO)
async def team_assets(
    team_id: int,
    ingestion: IngestionService = Depends(get_ingestion),
) -> AssetDTO:
    assets = await ingestion.assets.team_assets(team_id)
    if assets is None:
        raise HTTPException(status_code=404, detail="Team not found")
    return assets


@router.get("/players/{player_id}/assets", response_model=AssetDTO)
async def player_assets(
    player_id: int,
    ingestion: IngestionService = Depends(get_ingestion),
) -> AssetDTO:
    assets = await ingestion.assets.player_assets(player_id)
    if assets is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return assets
