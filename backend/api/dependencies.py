"""
Dependency injection for the API service.
Provides the ingestion, prediction, match center and stream services to route handlers.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from api.match_center import MatchCenter
from api.stream.broadcaster import EventBroadcaster
from ingest.gateway import ProviderGateway
from ingest.service import IngestionService
from predictor.client import PredictionModelClient
from predictor.service import PredictionService
from scheduler.service import SchedulerService
from shared.utils.database import DatabaseManager
from shared.utils.redis_manager import RedisManager


@dataclass
class ServiceContainer:
    db: DatabaseManager
    gateway: ProviderGateway
    ingestion: IngestionService
    prediction_client: PredictionModelClient
    predictions: PredictionService
    broadcaster: EventBroadcaster
    match_center: MatchCenter
    scheduler: Optional[SchedulerService] = None
    redis: Optional[RedisManager] = None


# Module-level singleton, initialized at startup
_services: ServiceContainer | None = None


def init_dependencies(services: ServiceContainer | None) -> None:
    """Install (or clear, with None) the service container. Called once at startup."""
    global _services
    _services = services


def get_services() -> ServiceContainer:
    if _services is None:
        raise RuntimeError("Services not initialized, call init_dependencies first")
    return _services


def get_gateway() -> ProviderGateway:
    return get_services().gateway


def get_ingestion() -> IngestionService:
    return get_services().ingestion


def get_predictions() -> PredictionService:
    return get_services().predictions


def get_broadcaster() -> EventBroadcaster:
    return get_services().broadcaster


def get_match_center() -> MatchCenter:
    return get_services().match_center
