"""Periodic tick on the running asyncio loop."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from .config import DEFAULT_POLL_SECONDS
from .logging_config import setup_logger

logger = setup_logger("turnwatch.scheduler", "turnwatch.log")

MIN_INTERVAL_SECONDS = 5.0

Tick = Callable[[], Awaitable[None]]


class RefreshScheduler:
    def __init__(self):
        self.interval = DEFAULT_POLL_SECONDS
        self._tick: Optional[Tick] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def configure(self, interval: float, tick: Tick, fire_immediately: bool = True) -> None:
        """Replace the tick and interval, then restart the timer. Needs a running loop."""
        self.interval = max(MIN_INTERVAL_SECONDS, interval)
        self._tick = tick
        self.restart(fire_immediately=fire_immediately)

    def restart(self, fire_immediately: bool = True) -> None:
        self.stop()
        if self._tick is None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(fire_immediately))

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self, fire_immediately: bool) -> None:
        if fire_immediately:
            await self._fire()
        while True:
            await asyncio.sleep(self.interval)
            await self._fire()

    async def _fire(self) -> None:
        if self._tick is None:
            return
        try:
            await self._tick()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in refresh tick: {e}", exc_info=True)
