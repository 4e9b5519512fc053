"""Health check scheduler — runs the engine at a fixed interval.

Ticks fire on a fixed cadence regardless of how long a pass takes. A tick that
fires while a pass is still running is skipped, never queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from healthcore.health.engine import HealthEngine
from healthcore.health.models import SystemSnapshot

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


class HealthScheduler:
    """Background timer around ``HealthEngine.run_all``."""

    def __init__(
        self,
        engine: HealthEngine,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        on_snapshot: Callable[[SystemSnapshot], Any] | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.engine = engine
        self.interval = interval
        self.on_snapshot = on_snapshot
        self.completed_runs = 0
        self.skipped_ticks = 0
        self.last_snapshot: SystemSnapshot | None = None
        self._timer: asyncio.Task[None] | None = None
        self._run: asyncio.Task[None] | None = None
        self._in_flight = False

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def start(self) -> None:
        """Start the timer. First tick fires immediately."""
        if self.running:
            return
        self._timer = asyncio.create_task(self._timer_loop(), name="health-scheduler")
        logger.info("Health scheduler started (interval=%ss)", self.interval)

    async def stop(self) -> None:
        """Stop the timer and any in-flight pass. Safe to call repeatedly."""
        tasks = [t for t in (self._timer, self._run) if t is not None and not t.done()]
        self._timer = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Health scheduler stopped")
        # A pass cancelled before its first step never reaches its finally.
        self._run = None
        self._in_flight = False

    def tick(self) -> bool:
        """Launch a pass unless one is already running. Returns whether it launched."""
        if self._in_flight:
            self.skipped_ticks += 1
            logger.info("Health pass still running — skipping tick")
            return False
        self._in_flight = True
        self._run = asyncio.create_task(self._run_once(), name="health-pass")
        return True

    async def _timer_loop(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self.interval)

    async def _run_once(self) -> None:
        try:
            snapshot = await self.engine.run_all()
            self.last_snapshot = snapshot
            self.completed_runs += 1
            if self.on_snapshot:
                try:
                    self.on_snapshot(snapshot)
                except Exception:
                    logger.exception("Snapshot callback error")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled health pass failed")
        finally:
            self._in_flight = False
