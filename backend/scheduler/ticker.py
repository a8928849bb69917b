"""
Fixed-cadence background task.

The cadence lives here; the work is a plain coroutine function that callers
and tests can invoke directly without waiting on a timer.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from shared.utils.logging import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """
    Runs ``func`` every ``interval_s`` seconds until stopped.

    A failing run is logged and the loop keeps going; runs never overlap.
    """

    def __init__(
        self,
        name: str,
        interval_s: float,
        func: Callable[[], Awaitable[Any]],
        initial_delay_s: Optional[float] = None,
    ) -> None:
        self.name = name
        self.interval_s = interval_s
        self._func = func
        self._initial_delay_s = interval_s if initial_delay_s is None else initial_delay_s
        self._task: Optional[asyncio.Task[None]] = None
        self.runs = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info("periodic_task_started", task=self.name, interval_s=self.interval_s)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("periodic_task_stopped", task=self.name, runs=self.runs, failures=self.failures)

    async def run_once(self) -> None:
        self.runs += 1
        try:
            await self._func()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failures += 1
            logger.error("periodic_task_failed", task=self.name, error=str(exc), exc_info=True)

    async def _loop(self) -> None:
        await asyncio.sleep(self._initial_delay_s)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_s)
