"""Scheduling for Perf Sentinel batches.

Provides timezone-aware cron schedules and the adapter that fires a batch
once or on a cron cadence.
"""

from .cron import CronSchedule, CronValidationError
from .scheduler import BatchScheduler

__all__ = [
    'CronSchedule',
    'CronValidationError',
    'BatchScheduler',
]
