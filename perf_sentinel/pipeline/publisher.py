"""Publish coordinator: one audit task end to end.

Steps run in order: audit, build record, append row, archive artifact,
remove working files. Failures are contained per step:

- audit or validation failure ends the task with nothing written;
- a failed append does not prevent archival, and vice versa;
- working files are removed on every exit path.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from ..audit.identity import derive_key
from ..audit.models import AuditReport, AuditTask, ResultRecord, format_timestamp
from ..audit.naming import ArtifactNamer, ArtifactNames
from ..audit.records import ResultRecordBuilder
from ..audit.runner import AuditRunner
from ..errors import AuditEngineError, InvalidReportError, LocalIOError, SinkWriteError
from ..persistence.sheets import SINK_NAME as TABULAR_SINK, TabularStore
from ..persistence.archive import SINK_NAME as ARCHIVE_SINK, ReportArchive
from ..persistence.workdir import WorkingDirectory
from .outcome import TaskOutcome, TaskStatus

logger = logging.getLogger(__name__)


class PublishCoordinator:
    """Runs one AuditTask through both sinks with strict failure containment."""

    def __init__(
        self,
        runner: AuditRunner,
        tabular_store: TabularStore,
        archive: ReportArchive,
        working_dir: Optional[WorkingDirectory] = None,
        namer: Optional[ArtifactNamer] = None,
        builder: Optional[ResultRecordBuilder] = None,
        include_links: bool = True,
    ):
        self.runner = runner
        self.tabular_store = tabular_store
        self.archive = archive
        self.working_dir = working_dir or WorkingDirectory(runner.working_dir)
        self.namer = namer or ArtifactNamer()
        self.builder = builder or ResultRecordBuilder()
        self.include_links = include_links

    async def publish(self, task: AuditTask) -> TaskOutcome:
        """Execute ``task`` and report what happened.

        Pipeline errors are logged and returned in the outcome; only
        unexpected defects propagate, after working files are removed.
        """
        started = time.monotonic()
        url_key = derive_key(task.url)
        names = self.namer.names(task.started_at, url_key, task.device)
        html_path, json_path = names.local_paths(self.working_dir.path)

        logger.info(
            f"Processing started at {format_timestamp(task.started_at)} "
            f"for URL: {task.url} ({task.device}, key {url_key})"
        )

        try:
            outcome = await self._publish(task, url_key, names)
        finally:
            cleanup_errors = self.working_dir.remove([html_path, json_path])

        outcome.errors.extend(cleanup_errors)
        outcome.duration_ms = (time.monotonic() - started) * 1000

        logger.info(
            f"Processing ended at {format_timestamp(datetime.now(timezone.utc))} "
            f"for URL: {task.url} ({task.device}): {outcome.status.value}"
        )
        logger.info(f"Processing time: {outcome.duration_ms:.0f} ms")
        return outcome

    async def _publish(self, task: AuditTask, url_key: str, names: ArtifactNames) -> TaskOutcome:
        try:
            self.working_dir.ensure()
        except LocalIOError as e:
            e.with_context(**task.log_context())
            logger.error(f"Cannot prepare working directory: {e}")
            return TaskOutcome(task=task, status=TaskStatus.AUDIT_FAILED, errors=[e])

        # 1. audit
        output_stem = self.working_dir.path / names.work_stem
        try:
            report = await self.runner.run(task.url, task.device_profile, output_stem)
        except AuditEngineError as e:
            e.with_context(**task.log_context())
            logger.error(f"Error running Lighthouse for {task.url}: {e}")
            return TaskOutcome(task=task, status=TaskStatus.AUDIT_FAILED, errors=[e])

        # 2. validate and build
        link = self.archive.link(names.storage_path) if self.include_links else None
        try:
            record = self.builder.build(report, task, url_key, link)
        except InvalidReportError as e:
            logger.error(f"Invalid Lighthouse result for {task.url}: {e}")
            return TaskOutcome(task=task, status=TaskStatus.INVALID_REPORT, errors=[e])

        errors = []

        # 3. append; archival is attempted regardless
        appended = await self._append(task, record, errors)

        # 4. archive
        archived = await self._archive(task, report, names, url_key, errors)

        return TaskOutcome.from_sinks(
            task,
            record,
            appended=appended,
            archived=archived,
            storage_path=names.storage_path,
            errors=errors,
        )

    async def _append(self, task: AuditTask, record: ResultRecord, errors: list) -> bool:
        try:
            await self.tabular_store.append(record.to_row())
        except Exception as e:
            error = self._as_sink_error(e, TABULAR_SINK, task)
            logger.error(f"Error saving data to tabular store: {error}")
            errors.append(error)
            return False
        return True

    async def _archive(
        self,
        task: AuditTask,
        report: AuditReport,
        names: ArtifactNames,
        url_key: str,
        errors: list,
    ) -> bool:
        try:
            await self.archive.upload(
                report.artifact,
                names.storage_path,
                content_type=report.content_type,
                tags={'url': task.url, 'device': task.device, 'url-key': url_key},
            )
        except Exception as e:
            error = self._as_sink_error(e, ARCHIVE_SINK, task)
            logger.error(f"Error archiving report: {error}")
            errors.append(error)
            return False

        logger.info(f"Report archived: {names.storage_path}")
        return True

    @staticmethod
    def _as_sink_error(error: Exception, sink: str, task: AuditTask) -> SinkWriteError:
        if not isinstance(error, SinkWriteError):
            wrapped = SinkWriteError(f"{type(error).__name__}: {error}", sink=sink)
            wrapped.__cause__ = error
            error = wrapped
        error.with_context(**task.log_context())
        return error
