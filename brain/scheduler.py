"""
Brain Scheduler

Runs the cycle orchestrator on a fixed local-time schedule (00:30, 06:30,
12:30 and 18:30 by default) plus once shortly after startup. Both loops are
plain asyncio tasks started and stopped with the FastAPI lifespan.

A failing cycle never kills the loop: the exception is logged and the next
slot is awaited as usual.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List, Callable

from brain.config_loader import load_config
from brain.orchestrator import CycleOrchestrator
from utils.time_utils import get_local_timezone

logger = logging.getLogger(__name__)


def next_run_time(now: datetime, hours: List[int], minute: int) -> datetime:
    """
    First scheduled slot strictly after now, in now's timezone.

    Args:
        now: Timezone-aware reference time
        hours: Hours of the day the cycle runs at
        minute: Minute past the hour

    Returns:
        Timezone-aware datetime of the next slot
    """
    for day_offset in range(2):
        day = (now + timedelta(days=day_offset)).date()
        for hour in sorted(hours):
            candidate = datetime(day.year, day.month, day.day, hour, minute, tzinfo=now.tzinfo)
            if candidate > now:
                return candidate
    raise ValueError(f"No run hours configured: {hours}")


def seconds_until_next_run(now: datetime, hours: List[int], minute: int) -> float:
    """Seconds from now to the next scheduled slot."""
    target = next_run_time(now, hours, minute)
    # Compare in UTC so DST transitions count real elapsed time
    return (target.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()


class BrainScheduler:
    """Owns the startup and periodic asyncio tasks that trigger brain cycles."""

    def __init__(
        self,
        orchestrator: CycleOrchestrator,
        config: Optional[Dict[str, Any]] = None,
        clock: Callable[[], datetime] = None
    ):
        config = config or load_config()
        self.orchestrator = orchestrator
        self.scheduler_config = config["scheduler"]
        self.tz = get_local_timezone(config.get("timezone"))
        self.clock = clock or (lambda: datetime.now(self.tz))
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def _run(self, trigger: str) -> None:
        try:
            await self.orchestrator.run_cycle(trigger)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Brain cycle ({trigger}) failed: {e}")

    async def _startup_runner(self) -> None:
        delay = float(self.scheduler_config["startup_delay_seconds"])
        logger.info(f"Initial brain cycle in {delay:.0f}s")
        await asyncio.sleep(delay)
        logger.info("Initial brain cycle after startup")
        await self._run("startup")

    async def _periodic_runner(self) -> None:
        hours = self.scheduler_config["run_hours"]
        minute = self.scheduler_config["run_minute"]
        while True:
            now = self.clock()
            delay = seconds_until_next_run(now, hours, minute)
            logger.info(f"Next brain cycle at {next_run_time(now, hours, minute).isoformat()}")
            await asyncio.sleep(delay)
            logger.info("Scheduled brain cycle triggered")
            await self._run("scheduled")

    def start(self) -> None:
        """Start the startup and periodic tasks. Must be called from a running event loop."""
        if self.running:
            logger.warning("Brain scheduler already started")
            return

        self._tasks = [
            asyncio.create_task(self._startup_runner(), name="brain-startup-cycle"),
            asyncio.create_task(self._periodic_runner(), name="brain-periodic-cycle"),
        ]
        hours = ", ".join(f"{h:02d}:{self.scheduler_config['run_minute']:02d}" for h in self.scheduler_config["run_hours"])
        logger.info(f"Brain scheduler started - running at {hours} ({self.tz})")

    async def stop(self) -> None:
        """Cancel both tasks and wait for them to finish."""
        if not self._tasks:
            return

        for task in self._tasks:
            task.cancel()
        try:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        finally:
            self._tasks = []
            logger.info("Brain scheduler stopped")
