"""Service assembly: builds the pipeline from configuration.

Clients are constructed once here and injected downward; nothing in the
pipeline reaches for a global client.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .audit.engine import AuditEngine, create_audit_engine
from .audit.runner import AuditRunner
from .config import SentinelConfiguration
from .persistence.sheets import TabularStore, create_tabular_store
from .persistence.archive import ReportArchive, create_report_archive
from .persistence.workdir import WorkingDirectory
from .pipeline.batch import BatchDriver
from .pipeline.outcome import BatchSummary
from .pipeline.publisher import PublishCoordinator
from .scheduling.scheduler import BatchScheduler

logger = logging.getLogger(__name__)


def build_audit_engine(config: SentinelConfiguration) -> AuditEngine:
    return create_audit_engine(
        config.audit.engine,
        lighthouse_path=config.audit.lighthouse_path,
        chrome_flags=config.audit.chrome_flags,
        timeout_seconds=config.audit.timeout_seconds,
        headless=config.audit.headless,
    )


def build_tabular_store(config: SentinelConfiguration) -> TabularStore:
    sheets = config.sheets
    if sheets.backend == "csv":
        return create_tabular_store("csv", path=sheets.csv_path)
    return create_tabular_store(
        "sheets",
        spreadsheet_id=sheets.spreadsheet_id,
        range=sheets.range,
        credentials_path=sheets.credentials_path,
        value_input_option=sheets.value_input_option,
    )


def build_report_archive(config: SentinelConfiguration) -> ReportArchive:
    archive = config.archive
    if archive.backend == "local":
        return create_report_archive("local", root=archive.root)
    return create_report_archive(
        "s3",
        bucket=archive.bucket,
        key_prefix=archive.key_prefix,
        region=archive.region,
        endpoint_url=archive.endpoint_url,
        access_key_id=archive.access_key_id,
        secret_access_key=archive.secret_access_key,
    )


@dataclass
class SentinelService:
    """A configured batch driver plus its scheduler."""

    config: SentinelConfiguration
    driver: BatchDriver
    last_summary: Optional[BatchSummary] = None

    async def run_batch(self) -> BatchSummary:
        self.last_summary = await self.driver.run_batch(self.config.urls)
        return self.last_summary

    def scheduler(self, **kwargs) -> BatchScheduler:
        return BatchScheduler(
            self.run_batch,
            cron=self.config.schedule.cron,
            timezone_str=self.config.schedule.timezone,
            **kwargs
        )


def create_service(
    config: SentinelConfiguration,
    engine: Optional[AuditEngine] = None,
    tabular_store: Optional[TabularStore] = None,
    archive: Optional[ReportArchive] = None,
) -> SentinelService:
    """Create a service, building any collaborator not passed in."""
    working_dir = WorkingDirectory(config.audit.working_dir)
    runner = AuditRunner(engine or build_audit_engine(config), working_dir=working_dir.path)
    coordinator = PublishCoordinator(
        runner=runner,
        tabular_store=tabular_store or build_tabular_store(config),
        archive=archive or build_report_archive(config),
        working_dir=working_dir,
        include_links=config.archive.include_links,
    )
    logger.info(
        f"Pipeline ready: {len(config.urls)} URLs, engine={runner.engine.name}, "
        f"sheets={config.sheets.backend}, archive={config.archive.backend}"
    )
    return SentinelService(config=config, driver=BatchDriver(coordinator))
