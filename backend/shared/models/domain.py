"""
Pydantic v2 domain models shared across all Scoreline services.
Provider payloads are parsed into these DTOs; ORM rows are exposed through the views.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.models.enums import MatchStatus, PredictionSource, Provider, StreamEventName, Venue


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Provider DTOs ───────────────────────────────────────────────────────
class TeamDTO(DomainModel):
    external_id: Optional[str] = None
    name: str
    short_name: Optional[str] = None
    stadium: Optional[str] = None


class CompetitionDTO(DomainModel):
    external_id: Optional[str] = None
    name: str
    code: Optional[str] = None
    country: Optional[str] = None


class PlayerDTO(DomainModel):
    external_id: Optional[str] = None
    name: str
    position: Optional[str] = None
    nationality: Optional[str] = None


class FixtureDTO(DomainModel):
    external_id: Optional[str] = None
    home_team: TeamDTO
    away_team: TeamDTO
    match_date: datetime
    status: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    venue: Optional[str] = None
    referee: Optional[str] = None
    matchday: Optional[int] = None


class LiveMatchDTO(DomainModel):
    """Transient live snapshot; carries no competition or season metadata."""
    external_id: Optional[str] = None
    home_team: TeamDTO
    away_team: TeamDTO
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: Optional[str] = None
    minute: Optional[int] = None


class StandingDTO(DomainModel):
    team: TeamDTO
    position: int
    played: int = 0
    won: int = 0
    draw: int = 0
    lost: int = 0
    points: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    form: Optional[str] = None


class AssetDTO(DomainModel):
    """Media URLs for a team or player. All-empty means no data yet."""
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    photo_url: Optional[str] = None
    cutout_url: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not any((self.logo_url, self.banner_url, self.photo_url, self.cutout_url))


# ── Predictions ─────────────────────────────────────────────────────────
class TeamStats(DomainModel):
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0
    form: str = ""


class PredictionRequest(DomainModel):
    match_id: int
    home_team: str
    away_team: str
    home_stats: TeamStats
    away_stats: TeamStats
    venue: Venue


class PredictionResponse(DomainModel):
    home_win_probability: float = Field(ge=0, le=100)
    draw_probability: float = Field(ge=0, le=100)
    away_win_probability: float = Field(ge=0, le=100)
    predicted_home_score: float = Field(ge=0)
    predicted_away_score: float = Field(ge=0)
    confidence: float = Field(ge=0, le=1)


class PredictionView(DomainModel):
    id: int
    match_id: int
    home_win_probability: float
    draw_probability: float
    away_win_probability: float
    predicted_home_score: float
    predicted_away_score: float
    confidence: float
    source: PredictionSource


# ── Canonical views ─────────────────────────────────────────────────────
class LiveMatchView(DomainModel):
    match_id: int
    home_team: str
    away_team: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: MatchStatus
    minute: Optional[int] = None
    match_date: datetime


class TeamInfo(DomainModel):
    id: int
    name: str
    logo_url: Optional[str] = None


class MatchHeroView(DomainModel):
    """One match with both teams' badges and its prediction."""
    match_id: int
    match_date: datetime
    venue: Optional[str] = None
    home_team: TeamInfo
    away_team: TeamInfo
    status: MatchStatus
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    competition: Optional[str] = None
    prediction: Optional[PredictionView] = None
    current_minute: Optional[int] = None


class StandingView(DomainModel):
    team_id: int
    team_name: str
    position: int
    played: int
    won: int
    draw: int
    lost: int
    points: int
    goals_for: int
    goals_against: int
    goal_difference: int
    form: Optional[str] = None


class SyncResult(DomainModel):
    pipeline: str
    competition_id: int
    season_id: int
    status: Literal["completed", "skipped"] = "completed"
    reason: Optional[str] = None
    provider: Optional[Provider] = None
    fetched: int = 0
    upserted: int = 0
    failed: int = 0


# ── Event stream ────────────────────────────────────────────────────────
class StreamEvent(DomainModel):
    id: str
    event: StreamEventName
    data: dict[str, Any]

    def encode(self) -> str:
        """Server-sent-events wire format."""
        payload = json.dumps(self.data, separators=(",", ":"), default=str)
        return f"id: {self.id}\nevent: {self.event.value}\ndata: {payload}\n\n"
