"""
Seed script for Scoreline.

Creates the tracked competitions and the current season, and registers the
provider mappings the sync pipelines and live merger need before the
scheduler can do anything useful.

Usage:
    docker compose exec api python -m seed
"""
from __future__ import annotations

import asyncio
import sys

from ingest.reconciliation.reconciler import EntityReconciler
from shared.config import get_settings
from shared.models.domain import CompetitionDTO
from shared.models.enums import EntityType, Provider
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

CURRENT_SEASON = "2024"

# football-data.org competition codes and API-Football league ids
COMPETITIONS: list[dict[str, str]] = [
    {"name": "Premier League", "code": "PL", "country": "England", "api_football": "39"},
    {"name": "Primera Division", "code": "PD", "country": "Spain", "api_football": "140"},
    {"name": "Bundesliga", "code": "BL1", "country": "Germany", "api_football": "78"},
    {"name": "Serie A", "code": "SA", "country": "Italy", "api_football": "135"},
    {"name": "Ligue 1", "code": "FL1", "country": "France", "api_football": "61"},
    {"name": "UEFA Champions League", "code": "CL", "country": "Europe", "api_football": "2"},
]


async def seed(season_name: str = CURRENT_SEASON) -> None:
    setup_logging("seed")
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.connect()
    try:
        await db.create_all()
        reconciler = EntityReconciler(db, settings.reconcile_max_attempts)

        season = await reconciler.find_or_create_season(season_name, is_current=True)
        for cfg in COMPETITIONS:
            competition = await reconciler.find_or_create(
                EntityType.COMPETITION,
                Provider.FOOTBALL_DATA,
                cfg["code"],
                CompetitionDTO(external_id=cfg["code"], name=cfg["name"], code=cfg["code"], country=cfg["country"]),
            )
            await reconciler.link(
                EntityType.COMPETITION, competition.id, Provider.API_FOOTBALL, cfg["api_football"]
            )
            logger.info("competition_seeded", competition=cfg["name"], competition_id=competition.id)

        logger.info("seed_complete", season=season.name, season_id=season.id, competitions=len(COMPETITIONS))
    finally:
        await db.disconnect()


if __name__ == "__main__":
    asyncio.run(seed(*sys.argv[1:2]))
