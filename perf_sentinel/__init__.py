"""Perf Sentinel: scheduled Lighthouse audits published to a results sheet and an artifact archive."""

__version__ = "1.0.0"
