"""Domain enumerations for the Scoreline platform."""
from __future__ import annotations

from enum import Enum


class Provider(str, Enum):
    API_FOOTBALL = "api_football"
    FOOTBALL_DATA = "football_data"
    THESPORTSDB = "thesportsdb"


class EntityType(str, Enum):
    TEAM = "team"
    COMPETITION = "competition"
    PLAYER = "player"


class MatchStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    FINISHED = "FINISHED"
    POSTPONED = "POSTPONED"
    CANCELLED = "CANCELLED"


class PredictionSource(str, Enum):
    MODEL = "model"
    FALLBACK = "fallback"


class Venue(str, Enum):
    HOME = "HOME"
    NEUTRAL = "NEUTRAL"


class GatewayOutcome(str, Enum):
    """How a gateway call ended."""
    OK = "ok"
    RATE_LIMITED = "rate_limited"
    CIRCUIT_OPEN = "circuit_open"
    SATURATED = "saturated"
    DISABLED = "disabled"
    TIMEOUT = "timeout"
    ERROR = "error"


class StreamEventName(str, Enum):
    CONNECTED = "connected"
    LIVE_UPDATE = "live-update"
    SCANNING_INSIGHT = "scanning-insight"
    PREDICTION_UPDATE = "prediction-update"
