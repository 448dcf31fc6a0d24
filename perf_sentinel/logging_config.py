"""Process-wide logging setup: console plus a daily rotating log file."""

import json
import logging
import logging.handlers
import os
from datetime import datetime, timezone
from typing import List

from .config import LoggingConfig

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record with a UTC timestamp."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname.lower(),
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class DailySizeRotatingFileHandler(logging.handlers.TimedRotatingFileHandler):
    """Rotates at midnight, and earlier once the file would grow past ``max_bytes``.

    A second rotation on the same day gets a numbered name (``combined.log.2024-05-01.1``).
    """

    def __init__(self, filename, max_bytes: int = 0, **kwargs):
        super().__init__(filename, **kwargs)
        self.max_bytes = max_bytes
        self.namer = self._unused_name

    def shouldRollover(self, record: logging.LogRecord) -> bool:
        if super().shouldRollover(record):
            return True
        if self.max_bytes <= 0:
            return False
        if self.stream is None:
            self.stream = self._open()
        self.stream.seek(0, os.SEEK_END)
        return self.stream.tell() + len(self.format(record)) + 1 > self.max_bytes

    @staticmethod
    def _unused_name(default_name: str) -> str:
        candidate, sequence = default_name, 0
        while os.path.exists(candidate):
            sequence += 1
            candidate = f"{default_name}.{sequence}"
        return candidate


def configure_logging(config: LoggingConfig) -> List[logging.Handler]:
    """Install handlers on the root logger and return them.

    Log files rotate at midnight or at ``max_bytes``, and ``retention_days``
    rotated files are kept.
    """
    formatter = JsonFormatter() if config.json_format else logging.Formatter(TEXT_FORMAT)
    handlers: List[logging.Handler] = []

    config.log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = DailySizeRotatingFileHandler(
        config.log_dir / config.filename,
        max_bytes=config.max_bytes,
        when="midnight",
        backupCount=config.retention_days,
        encoding="utf-8",
    )
    handlers.append(file_handler)

    if config.console:
        handlers.append(logging.StreamHandler())

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(config.level.upper())
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    return handlers
