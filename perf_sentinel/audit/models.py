"""Value objects flowing through the audit-capture-publish pipeline."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .devices import DeviceProfile


# Sentinel written in place of a score the report does not carry
NOT_AVAILABLE = "N/A"

# Category ids in the order of the destination sheet columns
CATEGORY_IDS = ("performance", "accessibility", "best-practices", "seo", "pwa")

RESULT_COLUMNS = (
    "date",
    "device",
    "url_key",
    "final_url",
    "performance",
    "accessibility",
    "best_practices",
    "seo",
    "pwa",
    "user_agent",
    "artifact_link",
)

Score = Union[float, str]


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class AuditTask:
    """One (URL, device profile) unit of work."""

    url: str
    device_profile: DeviceProfile
    started_at: datetime

    @property
    def device(self) -> str:
        return self.device_profile.name

    def log_context(self) -> Dict[str, str]:
        return {
            'url': self.url,
            'device': self.device,
            'started_at': format_timestamp(self.started_at),
        }


@dataclass
class AuditReport:
    """Normalized output of one audit engine run.

    ``categories`` is None when the engine report had no categories field at
    all; individual category scores are None when the engine could not score
    them.
    """

    final_url: Optional[str]
    categories: Optional[Dict[str, Optional[float]]]
    user_agent: Optional[str]
    artifact: bytes = b""
    content_type: str = "text/html"

    @classmethod
    def from_lighthouse_result(cls, lhr: Dict[str, Any], artifact: bytes = b"") -> "AuditReport":
        """Project a Lighthouse result (lhr) JSON object into a report."""
        categories = None
        raw_categories = lhr.get('categories')
        if isinstance(raw_categories, dict):
            categories = {}
            for category_id, category in raw_categories.items():
                score = category.get('score') if isinstance(category, dict) else None
                categories[category_id] = float(score) if isinstance(score, (int, float)) else None

        final_url = lhr.get('finalDisplayedUrl') or lhr.get('finalUrl')
        user_agent = lhr.get('userAgent')
        if user_agent is None:
            user_agent = (lhr.get('environment') or {}).get('hostUserAgent')

        return cls(
            final_url=final_url,
            categories=categories,
            user_agent=user_agent,
            artifact=artifact,
        )

    def missing_fields(self) -> List[str]:
        """Lighthouse fields a publishable report needs but this one lacks."""
        missing = []
        if self.categories is None:
            missing.append("categories")
        if not self.final_url:
            missing.append("finalUrl")
        return missing


@dataclass(frozen=True)
class ResultRecord:
    """Fixed-schema row appended to the tabular store."""

    date: str
    device: str
    url_key: str
    final_url: str
    performance: Score
    accessibility: Score
    best_practices: Score
    seo: Score
    pwa: Score
    user_agent: str
    artifact_link: str = ""

    def to_row(self) -> List[Any]:
        """Values in destination column order."""
        return [getattr(self, column) for column in RESULT_COLUMNS]
