"""Engine-agnostic audit runner."""

import logging
from pathlib import Path
from typing import Optional, Union

from ..errors import AuditEngineError
from .devices import DeviceProfile
from .engine import AuditEngine
from .identity import derive_key
from .models import AuditReport

logger = logging.getLogger(__name__)


class AuditRunner:
    """Runs one audit and returns a structurally valid report."""

    def __init__(self, engine: AuditEngine, working_dir: Union[str, Path] = "outputs"):
        self.engine = engine
        self.working_dir = Path(working_dir)

    async def run(
        self,
        url: str,
        device_profile: DeviceProfile,
        output_stem: Optional[Path] = None,
    ) -> AuditReport:
        """Audit ``url`` under ``device_profile``.

        Raises:
            AuditEngineError: The engine failed, or its report has no
                categories or no resolvable final URL.
        """
        if output_stem is None:
            output_stem = self.working_dir / f"{derive_key(url)}-{device_profile.name}"

        try:
            report = await self.engine.audit(url, device_profile, Path(output_stem))
        except AuditEngineError as e:
            raise e.with_context(url=url, device=device_profile.name)
        except Exception as e:
            raise AuditEngineError(
                f"Audit engine {self.engine.name} failed: {e}",
                context={'url': url, 'device': device_profile.name}
            ) from e

        missing = report.missing_fields()
        if missing:
            raise AuditEngineError(
                f"Audit report is missing {', '.join(missing)}",
                context={'url': url, 'device': device_profile.name}
            )

        logger.info(f"Lighthouse run successful for {url} ({device_profile.name})")
        return report
