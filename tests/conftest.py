"""Shared test fixtures and fakes for Perf Sentinel tests."""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from perf_sentinel.audit.devices import DeviceProfile
from perf_sentinel.audit.engine import AuditEngine, report_paths
from perf_sentinel.audit.models import AuditReport
from perf_sentinel.audit.runner import AuditRunner
from perf_sentinel.config import ConfigurationLoader
from perf_sentinel.errors import AuditEngineError, SinkWriteError
from perf_sentinel.persistence.sheets import TabularStore
from perf_sentinel.persistence.archive import ReportArchive
from perf_sentinel.persistence.workdir import WorkingDirectory
from perf_sentinel.pipeline.publisher import PublishCoordinator


DEFAULT_SCORES = {
    "performance": 0.91,
    "accessibility": 0.88,
    "best-practices": 1.0,
    "seo": 0.9,
    "pwa": 0.3,
}

HEADLESS_UA = "Mozilla/5.0 (X11; Linux x86_64) HeadlessChrome/120.0.0.0 Safari/537.36"


def make_lhr(
    url: str,
    scores: Optional[Dict[str, Any]] = None,
    final_url: Optional[str] = None,
    include_categories: bool = True,
) -> Dict[str, Any]:
    """Minimal Lighthouse result object."""
    lhr = {
        "requestedUrl": url,
        "finalUrl": final_url if final_url is not None else url,
        "userAgent": HEADLESS_UA,
    }
    if include_categories:
        scores = DEFAULT_SCORES if scores is None else scores
        lhr["categories"] = {
            category_id: {"id": category_id, "score": score}
            for category_id, score in scores.items()
        }
    return lhr


class FakeAuditEngine(AuditEngine):
    """Writes report files like Lighthouse does and records every call."""

    name = "fake"

    def __init__(self, failing_urls=(), lhr_overrides: Optional[Dict[str, Dict[str, Any]]] = None):
        self.failing_urls = set(failing_urls)
        self.lhr_overrides = lhr_overrides or {}
        self.calls: List[tuple] = []

    async def audit(self, url: str, profile: DeviceProfile, output_stem: Path) -> AuditReport:
        self.calls.append((url, profile.name))
        lhr = self.lhr_overrides.get(url) or make_lhr(url)

        html_path, json_path = report_paths(output_stem)
        html_path.write_bytes(f"<html><body>{url} {profile.name}</body></html>".encode())
        json_path.write_text(json.dumps(lhr))

        if url in self.failing_urls:
            raise AuditEngineError("Lighthouse exited with code 1: Chrome crashed")

        return AuditReport.from_lighthouse_result(lhr, artifact=html_path.read_bytes())


class FakeTabularStore(TabularStore):
    """Collects appended rows in memory."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.rows: List[List[Any]] = []

    async def append(self, row):
        if self.fail:
            raise SinkWriteError("quota exceeded", sink="tabular_store")
        self.rows.append(list(row))


class FakeReportArchive(ReportArchive):
    """Keeps archived reports in memory."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.tags: Dict[str, Dict[str, str]] = {}

    async def upload(self, body, storage_path, content_type="text/html", tags=None):
        if self.fail:
            raise SinkWriteError("access denied", sink="report_archive")
        receipt = self._receipt(body, storage_path, content_type, {k: str(v) for k, v in (tags or {}).items()})
        self.objects[storage_path] = body
        self.content_types[storage_path] = content_type
        self.tags[storage_path] = receipt.tags
        return receipt

    def link(self, storage_path):
        return f"https://archive.example.com/{storage_path}"


@pytest.fixture
def clean_environment(monkeypatch, tmp_path):
    """Unset every variable the configuration loader reads; run from an empty directory."""
    for name in ConfigurationLoader().variables():
        # setenv first so monkeypatch also restores values written by load_dotenv
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def started_at():
    return datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def working_dir(tmp_path: Path) -> WorkingDirectory:
    return WorkingDirectory(tmp_path / "outputs")


@pytest.fixture
def fake_engine():
    return FakeAuditEngine()


@pytest.fixture
def tabular_store():
    return FakeTabularStore()


@pytest.fixture
def archive():
    return FakeReportArchive()


@pytest.fixture
def coordinator(fake_engine, tabular_store, archive, working_dir):
    runner = AuditRunner(fake_engine, working_dir=working_dir.path)
    return PublishCoordinator(
        runner=runner,
        tabular_store=tabular_store,
        archive=archive,
        working_dir=working_dir,
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
