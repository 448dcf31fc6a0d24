"""Audit capture: engine bindings, report normalization and naming.

Usage:
    from perf_sentinel.audit import AuditRunner, LighthouseCliEngine, DESKTOP

    runner = AuditRunner(LighthouseCliEngine(), working_dir="outputs")
    report = await runner.run("https://example.com", DESKTOP)
"""

from .devices import DeviceProfile, ScreenEmulation, DESKTOP, MOBILE, CANONICAL_PROFILES
from .engine import (
    AuditEngine,
    LighthouseCliEngine,
    ChromiumLighthouseEngine,
    EngineType,
    create_audit_engine,
)
from .identity import derive_key
from .models import (
    AuditTask,
    AuditReport,
    ResultRecord,
    CATEGORY_IDS,
    NOT_AVAILABLE,
    RESULT_COLUMNS,
)
from .naming import ArtifactNamer, ArtifactNames
from .records import ResultRecordBuilder
from .runner import AuditRunner

__all__ = [
    'DeviceProfile',
    'ScreenEmulation',
    'DESKTOP',
    'MOBILE',
    'CANONICAL_PROFILES',
    'AuditEngine',
    'LighthouseCliEngine',
    'ChromiumLighthouseEngine',
    'EngineType',
    'create_audit_engine',
    'derive_key',
    'AuditTask',
    'AuditReport',
    'ResultRecord',
    'CATEGORY_IDS',
    'NOT_AVAILABLE',
    'RESULT_COLUMNS',
    'ArtifactNamer',
    'ArtifactNames',
    'ResultRecordBuilder',
    'AuditRunner',
]
