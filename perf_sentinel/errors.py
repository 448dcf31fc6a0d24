"""Error taxonomy for the audit-capture-publish pipeline.

Every pipeline error carries a context dictionary (URL, device, start time)
so log lines emitted at the containment boundary are diagnosable on their own.
None of these errors escape a batch; only ConfigurationError is process-fatal.
"""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for errors raised while processing one audit task."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def with_context(self, **context: Any) -> "PipelineError":
        """Attach additional context and return self for chaining."""
        self.context.update({k: v for k, v in context.items() if v is not None})
        return self

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({details})"


class AuditEngineError(PipelineError):
    """Audit engine failed, timed out, or returned malformed output."""
    pass


class InvalidReportError(PipelineError):
    """Audit report is structurally incomplete."""
    pass


class SinkWriteError(PipelineError):
    """Tabular append or artifact upload failed."""

    def __init__(self, message: str, sink: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.sink = sink


class LocalIOError(PipelineError):
    """Working file could not be created, read or removed."""

    def __init__(self, message: str, path: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.path = path


class ConfigurationError(Exception):
    """Required configuration is missing or invalid at startup."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))
