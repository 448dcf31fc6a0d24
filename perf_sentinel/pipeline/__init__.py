"""Audit-capture-publish pipeline."""

from .outcome import BatchSummary, TaskOutcome, TaskStatus
from .publisher import PublishCoordinator
from .batch import BatchDriver

__all__ = [
    'BatchSummary',
    'TaskOutcome',
    'TaskStatus',
    'PublishCoordinator',
    'BatchDriver',
]
