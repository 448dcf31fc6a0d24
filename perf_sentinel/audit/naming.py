"""Artifact file names and storage paths."""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional, Tuple, Union

from .models import format_timestamp


@dataclass(frozen=True)
class ArtifactNames:
    """Every name derived for one audit task."""

    work_stem: str
    work_html: str
    work_json: str
    display_name: str
    storage_path: str

    def local_paths(self, working_dir: Union[str, Path]) -> Tuple[Path, Path]:
        """Working HTML and JSON sidecar paths inside a working directory."""
        base = Path(working_dir)
        return base / self.work_html, base / self.work_json


class ArtifactNamer:
    """Derives deterministic names from (started_at, url_key, device).

    The storage path is grouped by archive day, which is the day the batch
    is archived rather than the day stored in ``started_at``.
    """

    REPORT_MARKER = "lighthouse-report"

    def __init__(self, today=None):
        self._today = today or date.today

    def names(
        self,
        started_at: datetime,
        url_key: str,
        device: str,
        archive_day: Optional[date] = None,
    ) -> ArtifactNames:
        timestamp = format_timestamp(started_at)
        display_name = f"{timestamp}-{url_key}-{self.REPORT_MARKER}-{device}.html"

        # Lighthouse appends .report.<format> to the output path for multi-format runs
        work_stem = f"{self._compact(started_at)}-{url_key}-{device}"

        day = archive_day or self._today()
        return ArtifactNames(
            work_stem=work_stem,
            work_html=f"{work_stem}.report.html",
            work_json=f"{work_stem}.report.json",
            display_name=display_name,
            storage_path=f"{day.strftime('%Y-%m-%d')}/{display_name}",
        )

    @staticmethod
    def _compact(started_at: datetime) -> str:
        if started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=timezone.utc)
        started_at = started_at.astimezone(timezone.utc)
        return started_at.strftime("%Y%m%dT%H%M%S") + f"{started_at.microsecond // 1000:03d}Z"
