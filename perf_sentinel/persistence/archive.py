"""Report archive: long-term home of the HTML audit reports.

Reports are addressed by their storage path (``<day>/<display name>``).
Two backends share one interface: S3 (or any S3-compatible endpoint) for
deployments and a local directory for development runs.
"""

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import quote

import aiobotocore.session
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import SinkWriteError

logger = logging.getLogger(__name__)

SINK_NAME = "report_archive"

DEFAULT_CONTENT_TYPE = "text/html"

# S3 user metadata is ASCII only and limited to 2 KB per object
METADATA_SAFE_CHARS = ":/?&=#"
METADATA_VALUE_LIMIT = 512


@dataclass
class ArchivedReport:
    """Receipt for one archived report."""

    storage_path: str
    sha256: str
    size_bytes: int
    content_type: str
    tags: Dict[str, str] = field(default_factory=dict)


def _tags(tags: Optional[Dict[str, object]]) -> Dict[str, str]:
    return {str(key): str(value) for key, value in (tags or {}).items()}


def _header_safe(value: str) -> str:
    """Percent-encode a tag value for an x-amz-meta-* header and cap its length."""
    return quote(value, safe=METADATA_SAFE_CHARS)[:METADATA_VALUE_LIMIT]


class ReportArchive(ABC):
    """Write-once store for audit report artifacts."""

    @abstractmethod
    async def upload(
        self,
        body: bytes,
        storage_path: str,
        content_type: str = DEFAULT_CONTENT_TYPE,
        tags: Optional[Dict[str, object]] = None,
    ) -> ArchivedReport:
        """Archive ``body`` at ``storage_path``.

        Raises:
            SinkWriteError: If the report could not be stored
        """
        pass

    @abstractmethod
    def link(self, storage_path: str) -> str:
        """URL under which the report at ``storage_path`` is reachable.

        Computed from the path alone; the report does not have to exist yet.
        """
        pass

    @staticmethod
    def _receipt(body: bytes, storage_path: str, content_type: str, tags: Dict[str, str]) -> ArchivedReport:
        return ArchivedReport(
            storage_path=storage_path,
            sha256=hashlib.sha256(body).hexdigest(),
            size_bytes=len(body),
            content_type=content_type,
            tags=tags,
        )


class LocalReportArchive(ReportArchive):
    """Archive under a local directory, with a JSON sidecar per report."""

    SIDECAR_SUFFIX = ".meta.json"

    def __init__(self, root: Union[str, Path] = "artifacts"):
        self.root = Path(root)

    def _sidecar(self, target: Path) -> Path:
        return target.with_name(target.name + self.SIDECAR_SUFFIX)

    async def upload(self, body, storage_path, content_type=DEFAULT_CONTENT_TYPE, tags=None):
        receipt = self._receipt(body, storage_path, content_type, _tags(tags))
        target = self.root / storage_path

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(body)
            self._sidecar(target).write_text(json.dumps({
                'content_type': receipt.content_type,
                'sha256': receipt.sha256,
                'size_bytes': receipt.size_bytes,
                'archived_at': datetime.now(timezone.utc).isoformat(),
                'tags': receipt.tags,
            }, indent=2))
        except OSError as e:
            raise SinkWriteError(f"Cannot write report to {target}: {e}", sink=SINK_NAME) from e

        logger.info(f"Report archived locally: {target}")
        return receipt

    def link(self, storage_path: str) -> str:
        return (self.root / storage_path).absolute().as_uri()


class S3ReportArchive(ReportArchive):
    """Archive in an S3 bucket through aiobotocore.

    Credentials fall back to the default AWS provider chain (environment,
    shared config, instance role) unless both keys are given explicitly.
    """

    def __init__(
        self,
        bucket: str,
        key_prefix: str = "",
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
    ):
        self.bucket = bucket
        self.key_prefix = f"{key_prefix.strip('/')}/" if key_prefix.strip('/') else ""
        self.region = region
        self.endpoint_url = endpoint_url

        self._client_kwargs = {'region_name': region}
        if endpoint_url:
            self._client_kwargs['endpoint_url'] = endpoint_url
        if access_key_id and secret_access_key:
            self._client_kwargs.update(
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
            )

        self._session = aiobotocore.session.AioSession()

    def object_key(self, storage_path: str) -> str:
        return self.key_prefix + storage_path.lstrip('/')

    def _client(self):
        return self._session.create_client('s3', **self._client_kwargs)

    async def upload(self, body, storage_path, content_type=DEFAULT_CONTENT_TYPE, tags=None):
        receipt = self._receipt(body, storage_path, content_type, _tags(tags))
        key = self.object_key(storage_path)

        user_metadata = {'sha256': receipt.sha256}
        user_metadata.update((name, _header_safe(value)) for name, value in receipt.tags.items())

        try:
            async with self._client() as s3:
                await s3.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=body,
                    ContentType=content_type,
                    Metadata=user_metadata,
                )
        except (ClientError, BotoCoreError) as e:
            raise SinkWriteError(f"Error uploading report to s3://{self.bucket}/{key}: {e}", sink=SINK_NAME) from e

        logger.info(f"File uploaded to S3: {key}")
        return receipt

    def link(self, storage_path: str) -> str:
        key = quote(self.object_key(storage_path))
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


def create_report_archive(backend: str = "s3", **kwargs) -> ReportArchive:
    """Build a report archive for ``backend`` ("s3" or "local")."""
    backends = {'s3': S3ReportArchive, 'local': LocalReportArchive}
    try:
        archive_class = backends[backend.lower()]
    except KeyError:
        raise ValueError(f"Unsupported archive backend: {backend}") from None
    return archive_class(**kwargs)
