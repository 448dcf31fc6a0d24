"""Batch driver: every configured URL under every device profile, in order."""

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Sequence, Tuple

from ..audit.devices import CANONICAL_PROFILES, DeviceProfile
from ..audit.models import AuditTask
from .outcome import BatchSummary, TaskOutcome, TaskStatus
from .publisher import PublishCoordinator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchDriver:
    """Runs tasks strictly sequentially, one audit engine resource at a time."""

    def __init__(
        self,
        coordinator: PublishCoordinator,
        profiles: Sequence[DeviceProfile] = CANONICAL_PROFILES,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.coordinator = coordinator
        self.profiles = tuple(profiles)
        self.clock = clock

    def plan(self, urls: Iterable[str]) -> List[Tuple[str, DeviceProfile]]:
        """Task order: URLs in configuration order, profiles in declared order per URL."""
        plan = []
        for url in urls:
            url = url.strip()
            if not url:
                continue
            for profile in self.profiles:
                plan.append((url, profile))
        return plan

    async def run_batch(self, urls: Iterable[str]) -> BatchSummary:
        """Run one full batch. Never raises for a failing task."""
        plan = self.plan(urls)
        summary = BatchSummary(started_at=self.clock())
        logger.info(f"Batch started with {len(plan)} tasks")

        for url, profile in plan:
            # started_at is taken when the task begins, not when the batch was planned
            task = AuditTask(url=url, device_profile=profile, started_at=self.clock())
            summary.outcomes.append(await self._run_task(task))

        summary.completed_at = self.clock()
        counts = {status: count for status, count in summary.counts().items() if count}
        logger.info(f"Batch completed: {summary.total} tasks, {counts}")
        return summary

    async def _run_task(self, task: AuditTask) -> TaskOutcome:
        try:
            return await self.coordinator.publish(task)
        except Exception as e:
            logger.exception(f"Error during scheduled task for {task.url} ({task.device}): {e}")
            return TaskOutcome(task=task, status=TaskStatus.CRASHED, errors=[e])
