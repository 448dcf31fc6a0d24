"""Perf Sentinel persistence layer.

Key Components:
- Sheets: tabular stores for result rows (Google Sheets, CSV)
- Archive: report archives for the HTML reports (S3, local)
- Workdir: transient working directory for engine output
"""

from .sheets import (
    TabularStore,
    GoogleSheetsTabularStore,
    CsvTabularStore,
    create_tabular_store,
)
from .archive import (
    ArchivedReport,
    ReportArchive,
    LocalReportArchive,
    S3ReportArchive,
    create_report_archive,
)
from .workdir import WorkingDirectory

__all__ = [
    'TabularStore',
    'GoogleSheetsTabularStore',
    'CsvTabularStore',
    'create_tabular_store',
    'ArchivedReport',
    'ReportArchive',
    'LocalReportArchive',
    'S3ReportArchive',
    'create_report_archive',
    'WorkingDirectory',
]
