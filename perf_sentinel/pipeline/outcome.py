"""Outcome values returned by the publish pipeline instead of raised errors."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from ..audit.models import AuditTask, ResultRecord


class TaskStatus(str, Enum):
    """Final state of one audit task."""
    PUBLISHED = "published"            # appended and archived
    PARTIAL = "partial"                # exactly one sink succeeded
    SINKS_FAILED = "sinks_failed"      # report valid, both sinks failed
    AUDIT_FAILED = "audit_failed"      # no report produced
    INVALID_REPORT = "invalid_report"  # report failed validation, nothing written
    CRASHED = "crashed"                # unexpected error escaped the coordinator


@dataclass
class TaskOutcome:
    """What happened to one AuditTask."""

    task: AuditTask
    status: TaskStatus
    record: Optional[ResultRecord] = None
    appended: bool = False
    archived: bool = False
    storage_path: Optional[str] = None
    errors: List[Exception] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == TaskStatus.PUBLISHED

    @classmethod
    def from_sinks(cls, task: AuditTask, record: ResultRecord, appended: bool, archived: bool, **kwargs) -> "TaskOutcome":
        if appended and archived:
            status = TaskStatus.PUBLISHED
        elif appended or archived:
            status = TaskStatus.PARTIAL
        else:
            status = TaskStatus.SINKS_FAILED
        return cls(task=task, status=status, record=record, appended=appended, archived=archived, **kwargs)


@dataclass
class BatchSummary:
    """Outcomes of one batch, in execution order."""

    started_at: datetime
    completed_at: Optional[datetime] = None
    outcomes: List[TaskOutcome] = field(default_factory=list)

    @property
    def appended_records(self) -> List[ResultRecord]:
        return [outcome.record for outcome in self.outcomes if outcome.appended]

    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts

    @property
    def total(self) -> int:
        return len(self.outcomes)
