"""
Scheduled ingestion jobs.

Full sync (fixtures + standings for the current season), live score merging
and the asset refresh each run as an independent periodic task.
"""
from __future__ import annotations

from typing import Optional

from ingest.errors import SyncAborted
from ingest.service import IngestionService
from scheduler.ticker import PeriodicTask
from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class SchedulerService:
    def __init__(self, ingestion: IngestionService, settings: Optional[Settings] = None) -> None:
        self._ingestion = ingestion
        self._settings = settings or get_settings()
        self.tasks = [
            PeriodicTask("sync_all", self._settings.sync_interval_s, self.run_sync_all, initial_delay_s=5.0),
            PeriodicTask("sync_live", self._settings.live_sync_interval_s, self.run_sync_live),
            PeriodicTask("refresh_assets", self._settings.asset_sync_interval_s, self.run_refresh_assets),
        ]

    async def run_sync_all(self) -> None:
        try:
            await self._ingestion.sync_all()
        except SyncAborted as exc:
            # not retried until the next scheduled run
            logger.error("scheduled_sync_aborted", error=str(exc))

    async def run_sync_live(self) -> None:
        merged = await self._ingestion.sync_live()
        logger.debug("scheduled_live_sync_done", merged=merged)

    async def run_refresh_assets(self) -> None:
        await self._ingestion.refresh_assets()

    def start(self) -> None:
        for task in self.tasks:
            task.start()
        logger.info("scheduler_started", tasks=[t.name for t in self.tasks])

    async def stop(self) -> None:
        for task in self.tasks:
            await task.stop()
        logger.info("scheduler_stopped")
