"""
FastAPI application factory for the Scoreline API service.

Creates the app with:
- REST routes (sync, competitions, matches, teams)
- Server-sent analysis stream
- Middleware stack
- Health and metrics endpoints
- Lifespan management: infrastructure, provider gateway, ingestion,
  predictions, event broadcaster and scheduler
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Response
from sqlalchemy import text

from api.dependencies import ServiceContainer, get_services, init_dependencies
from api.match_center import MatchCenter
from api.middleware import setup_middleware
from api.routes.competitions import router as competitions_router
from api.routes.matches import router as matches_router
from api.routes.stream import router as stream_router
from api.routes.sync import router as sync_router
from api.stream.broadcaster import EventBroadcaster
from ingest.gateway import ProviderGateway
from ingest.service import IngestionService, connect_with_retry
from predictor.client import PredictionModelClient
from predictor.service import PredictionService
from scheduler.service import SchedulerService
from shared.config import CacheBackendKind, Settings, get_settings
from shared.utils.cache import ResultCache, build_cache_backend
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import render_latest
from shared.utils.redis_manager import RedisManager

logger = get_logger(__name__)


async def build_services(settings: Settings) -> ServiceContainer:
    """Connect infrastructure and wire every service. Nothing is started yet."""
    redis: Optional[RedisManager] = None
    if settings.cache_backend == CacheBackendKind.REDIS:
        redis = RedisManager(settings)
        await connect_with_retry(redis.connect, "Redis")

    db = DatabaseManager(settings)
    await connect_with_retry(db.connect, "Database")
    await db.create_all()

    backend = build_cache_backend(settings, redis)
    gateway = ProviderGateway.from_settings(settings)
    ingestion = IngestionService.build(db, gateway, ResultCache(backend, "assets"), settings)
    prediction_client = PredictionModelClient(gateway, settings)
    predictions = PredictionService(db, prediction_client, ResultCache(backend, "prediction"), settings)
    return ServiceContainer(
        db=db,
        gateway=gateway,
        ingestion=ingestion,
        prediction_client=prediction_client,
        predictions=predictions,
        broadcaster=EventBroadcaster(db, predictions, settings),
        match_center=MatchCenter(db, predictions, ingestion.assets, settings),
        scheduler=SchedulerService(ingestion, settings) if settings.scheduler_enabled else None,
        redis=redis,
    )


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing without DB/Redis."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Startup connects infrastructure and starts the background producers;
    shutdown stops them in reverse order.
    """
    settings = get_settings()
    setup_logging("api")

    services = await build_services(settings)
    await services.ingestion.registry.start_all()
    await services.prediction_client.start()
    init_dependencies(services)

    services.broadcaster.start()
    if services.scheduler is not None:
        services.scheduler.start()

    logger.info(
        "api_service_started",
        host=settings.api_host,
        port=settings.api_port,
        scheduler=services.scheduler is not None,
        cache_backend=settings.cache_backend.value,
    )

    yield

    if services.scheduler is not None:
        await services.scheduler.stop()
    await services.broadcaster.stop()
    await services.prediction_client.close()
    await services.ingestion.registry.close_all()
    await services.db.disconnect()
    if services.redis is not None:
        await services.redis.disconnect()
    init_dependencies(None)
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing without DB/Redis."""
    settings = get_settings()

    app = FastAPI(
        title="Scoreline API",
        description="Football data reconciliation, live scores and predictions",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    setup_middleware(app)

    app.include_router(sync_router)
    app.include_router(competitions_router)
    app.include_router(matches_router)
    app.include_router(stream_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, Any]:
        """Liveness plus a database probe; never fails, reports degraded instead."""
        try:
            services = get_services()
        except RuntimeError:
            return {"status": "starting", "service": "api"}

        db_ok = False
        try:
            async with services.db.read_session() as session:
                await session.execute(text("SELECT 1"))
            db_ok = True
        except Exception as exc:
            logger.warning("health_db_check_failed", error=str(exc))

        redis_ok: Optional[bool] = None
        if services.redis is not None:
            redis_ok = await services.redis.ping()

        healthy = db_ok and redis_ok is not False
        return {
            "status": "ok" if healthy else "degraded",
            "service": "api",
            "database": db_ok,
            "redis": redis_ok,
            "stream_subscribers": services.broadcaster.subscriber_count,
        }

    if settings.metrics_enabled:

        @app.get("/metrics", tags=["system"], include_in_schema=False)
        async def metrics() -> Response:
            body, content_type = render_latest()
            return Response(content=body, media_type=content_type)

    return app


# For running with uvicorn directly
app = create_app()
