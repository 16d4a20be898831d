"""
Interval scheduler driving payout passes.

Two states: IDLE and RUNNING. A pass always returns the scheduler to IDLE,
whatever happened inside it, and the next pass is armed ``interval`` seconds
later. A tick arriving while a pass is still running is skipped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

from loguru import logger

from payouts.models import PassReport


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class Scheduler:
    def __init__(self, run_pass: Callable[[], Awaitable[PassReport]], interval: float):
        self.run_pass = run_pass
        self.interval = interval
        self.state = SchedulerState.IDLE
        self.passes = 0
        self.skipped = 0
        self.last_report: PassReport | None = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    async def tick(self) -> PassReport | None:
        """
        Run one pass unless one is already in flight.

        Returns:
            The pass report, or None when the pass failed or was skipped
        """
        if self.running:
            self.skipped += 1
            logger.warning("Previous payout pass still running, skipping this interval")
            return None

        self.state = SchedulerState.RUNNING
        try:
            report = await self.run_pass()
            self.last_report = report
            return report
        except Exception as e:
            logger.exception(f"Payout pass failed: {e}")
            return None
        finally:
            self.passes += 1
            self.state = SchedulerState.IDLE

    async def run_forever(self) -> None:
        """Run passes until stop() is called."""
        logger.info(f"Payout scheduler started (interval: {self.interval}s)")
        self._stop.clear()
        while not self._stop.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except TimeoutError:
                continue
        logger.info("Payout scheduler stopped")

    def stop(self) -> None:
        self._stop.set()
