"""Projection of audit reports into result rows."""

import logging
from typing import Optional

from ..errors import InvalidReportError
from .models import (
    AuditReport,
    AuditTask,
    CATEGORY_IDS,
    NOT_AVAILABLE,
    ResultRecord,
    Score,
    format_timestamp,
)

logger = logging.getLogger(__name__)


class ResultRecordBuilder:
    """Builds ResultRecords from validated audit reports."""

    def build(
        self,
        report: AuditReport,
        task: AuditTask,
        url_key: str,
        link: Optional[str] = None,
    ) -> ResultRecord:
        """Build the row for one task.

        Raises:
            InvalidReportError: The report has no categories or no final URL.
        """
        missing = report.missing_fields()
        if missing:
            raise InvalidReportError(
                f"Invalid audit result structure: missing {', '.join(missing)}",
                context=task.log_context(),
            )

        scores = {category_id: self._score(report, category_id) for category_id in CATEGORY_IDS}
        absent = [category_id for category_id, score in scores.items() if score == NOT_AVAILABLE]
        if absent:
            logger.debug(f"Categories not available for {task.url} ({task.device}): {', '.join(absent)}")

        return ResultRecord(
            date=format_timestamp(task.started_at),
            device=task.device,
            url_key=url_key,
            final_url=report.final_url,
            performance=scores["performance"],
            accessibility=scores["accessibility"],
            best_practices=scores["best-practices"],
            seo=scores["seo"],
            pwa=scores["pwa"],
            user_agent=report.user_agent or NOT_AVAILABLE,
            artifact_link=link or "",
        )

    @staticmethod
    def _score(report: AuditReport, category_id: str) -> Score:
        score = report.categories.get(category_id)
        return NOT_AVAILABLE if score is None else score
