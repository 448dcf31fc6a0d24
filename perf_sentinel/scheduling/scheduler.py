"""Scheduler adapter that fires batches once or on a cron cadence.

Triggers are serialized: a batch is awaited inline, and fire times that
elapse while it runs are skipped rather than queued or run concurrently.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from .cron import CronSchedule

logger = logging.getLogger(__name__)

# Upper bound when counting fire times skipped during one long batch
MAX_SKIPPED_COUNT = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchScheduler:
    """Calls a zero-argument coroutine function on a cron schedule."""

    def __init__(
        self,
        trigger: Callable[[], Awaitable[Any]],
        cron: str = "0 * * * *",
        timezone_str: str = "UTC",
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.trigger = trigger
        self.cron = cron
        self.timezone_str = timezone_str
        self.clock = clock
        self.sleep = sleep

        self.fire_count = 0
        self.skipped_count = 0
        self._running = False

    async def run_once(self) -> None:
        """Fire a single batch immediately."""
        await self._fire()

    async def run_forever(self, max_fires: Optional[int] = None) -> None:
        """Fire on every cron tick until stopped (or ``max_fires`` batches ran)."""
        schedule = CronSchedule(self.cron, self.timezone_str)
        self._running = True
        logger.info(f"Cron {self.cron} is started ({self.timezone_str})")

        last_tick: Optional[datetime] = None
        while self._running:
            now = self.clock()
            # a sleep can end a little early; never schedule the same tick twice
            next_run = schedule.next_after(now if last_tick is None else max(now, last_tick))
            delay = max(0.0, (next_run - now).total_seconds())
            logger.info(f"Next batch at {next_run.isoformat()} (in {delay:.0f}s)")

            await self.sleep(delay)
            if not self._running:
                break

            await self._fire()
            last_tick = next_run
            self._record_skipped(schedule, next_run)

            if max_fires is not None and self.fire_count >= max_fires:
                break

        self._running = False
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._running = False

    async def _fire(self) -> None:
        self.fire_count += 1
        try:
            await self.trigger()
        except Exception as e:
            logger.exception(f"Error during scheduled task: {e}")

    def _record_skipped(self, schedule: CronSchedule, fired_at: datetime) -> None:
        """Count fire times that passed while the batch fired at ``fired_at`` was running."""
        skipped = schedule.ticks_between(fired_at, self.clock(), limit=MAX_SKIPPED_COUNT)
        if skipped:
            self.skipped_count += skipped
            logger.warning(f"Batch overran the schedule; skipped {skipped} trigger(s)")
