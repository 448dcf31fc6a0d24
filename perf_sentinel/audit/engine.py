"""Audit engine bindings.

Two engines produce the same AuditReport:

- LighthouseCliEngine runs the Lighthouse CLI as a subprocess; Lighthouse
  launches and kills its own headless Chrome.
- ChromiumLighthouseEngine launches Chromium through Playwright on an
  explicit free debugging port and points Lighthouse at that port, so the
  browser lifecycle is owned on the Python side.

Both engines release their subprocess/browser on every exit path.
"""

import asyncio
import json
import logging
import os
import shlex
import signal
import socket
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, List, Optional, Sequence

from playwright.async_api import Browser, Error as PlaywrightError, async_playwright

from ..errors import AuditEngineError
from .devices import DeviceProfile
from .models import AuditReport

logger = logging.getLogger(__name__)

# Grace period for the stderr pipe to close once the process group is gone
STDERR_DRAIN_SECONDS = 5.0


class EngineType:
    """Supported audit engine types."""
    CLI = "cli"
    CHROMIUM = "chromium"


def find_free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for an unused TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def report_paths(output_stem: Path) -> tuple:
    """HTML and JSON paths Lighthouse writes for a multi-format output stem."""
    output_stem = Path(output_stem)
    return (
        output_stem.with_name(output_stem.name + ".report.html"),
        output_stem.with_name(output_stem.name + ".report.json"),
    )


class AuditEngine(ABC):
    """Scores a URL under a device profile and returns a report."""

    name: str = "engine"

    @abstractmethod
    async def audit(self, url: str, profile: DeviceProfile, output_stem: Path) -> AuditReport:
        """Run one audit.

        Args:
            url: Page to audit
            profile: Device emulation profile
            output_stem: Working path prefix for report files written by the engine

        Returns:
            Report with scores and the HTML artifact

        Raises:
            AuditEngineError: The engine failed, timed out or produced no report
        """
        pass


class LighthouseCliEngine(AuditEngine):
    """Runs Lighthouse as a subprocess with profile parameters as flags."""

    name = EngineType.CLI

    def __init__(
        self,
        lighthouse_path: str = "lighthouse",
        chrome_flags: Sequence[str] = ("--headless",),
        timeout_seconds: float = 300.0,
    ):
        self.lighthouse_path = lighthouse_path
        self.chrome_flags = list(chrome_flags)
        self.timeout_seconds = timeout_seconds

    def build_command(
        self,
        url: str,
        profile: DeviceProfile,
        output_stem: Path,
        port: Optional[int] = None,
    ) -> List[str]:
        """Build the Lighthouse command line for one run."""
        command = shlex.split(self.lighthouse_path)
        command.extend([
            url,
            "--output=html",
            "--output=json",
            f"--output-path={output_stem}",
            "--quiet",
        ])
        command.extend(profile.to_lighthouse_flags())

        if port is not None:
            command.append(f"--port={port}")
        elif self.chrome_flags:
            command.append(f"--chrome-flags={' '.join(self.chrome_flags)}")

        return command

    async def audit(self, url: str, profile: DeviceProfile, output_stem: Path) -> AuditReport:
        command = self.build_command(url, profile, output_stem)
        await self._execute(command, url)
        return self._load_report(output_stem, url)

    async def _execute(self, command: List[str], url: str) -> None:
        logger.debug(f"Running audit engine: {' '.join(command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise AuditEngineError(f"Failed to start Lighthouse: {e}", context={'url': url}) from e

        # read stderr alongside; children of Lighthouse may hold the pipe open after it exits
        stderr_reader = asyncio.ensure_future(process.stderr.read())
        try:
            await asyncio.wait_for(process.wait(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise AuditEngineError(
                f"Lighthouse timed out after {self.timeout_seconds}s",
                context={'url': url}
            )
        finally:
            await self._terminate(process)
            stderr = await self._drain(stderr_reader)

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()[-500:]
            raise AuditEngineError(
                f"Lighthouse exited with code {process.returncode}: {detail}",
                context={'url': url}
            )

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        """Kill the engine process group, including anything Lighthouse left behind."""
        try:
            if hasattr(os, "killpg"):
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            return

        if process.returncode is None:
            await process.wait()
        logger.info(f"Audit engine process group {process.pid} killed")

    @staticmethod
    async def _drain(reader: "asyncio.Future[bytes]") -> bytes:
        try:
            return await asyncio.wait_for(reader, timeout=STDERR_DRAIN_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Audit engine stderr still open after the process group was killed")
            return b""

    @staticmethod
    def _load_report(output_stem: Path, url: str) -> AuditReport:
        html_path, json_path = report_paths(output_stem)
        try:
            lhr = json.loads(json_path.read_text(encoding="utf-8"))
            artifact = html_path.read_bytes()
        except FileNotFoundError as e:
            raise AuditEngineError(f"Lighthouse produced no report: {e.filename}", context={'url': url}) from e
        except (OSError, json.JSONDecodeError) as e:
            raise AuditEngineError(f"Unreadable Lighthouse report: {e}", context={'url': url}) from e

        if not isinstance(lhr, dict):
            raise AuditEngineError("Lighthouse report is not a JSON object", context={'url': url})

        return AuditReport.from_lighthouse_result(lhr, artifact=artifact)


class ChromiumLighthouseEngine(LighthouseCliEngine):
    """Owns a Playwright Chromium instance and hands its port to Lighthouse."""

    name = EngineType.CHROMIUM

    def __init__(self, headless: bool = True, **kwargs):
        super().__init__(**kwargs)
        self.headless = headless

    async def audit(self, url: str, profile: DeviceProfile, output_stem: Path) -> AuditReport:
        port = find_free_port()
        async with self.browser(port, url):
            command = self.build_command(url, profile, output_stem, port=port)
            await self._execute(command, url)
        return self._load_report(output_stem, url)

    @asynccontextmanager
    async def browser(self, port: int, url: str = "") -> AsyncGenerator[Browser, None]:
        """Launch Chromium listening on ``port`` and close it on exit."""
        playwright = await async_playwright().start()
        browser = None
        try:
            try:
                browser = await playwright.chromium.launch(
                    headless=self.headless,
                    args=[f"--remote-debugging-port={port}"],
                )
            except PlaywrightError as e:
                raise AuditEngineError(f"Failed to launch Chromium: {e}", context={'url': url}) from e

            logger.info(f"Chromium launched on port {port}")
            yield browser

        finally:
            if browser is not None:
                try:
                    await browser.close()
                    logger.info(f"Chromium instance closed for {url}")
                except PlaywrightError as e:
                    logger.warning(f"Error closing Chromium: {e}")
            await playwright.stop()


def create_audit_engine(engine: str = EngineType.CLI, **kwargs) -> AuditEngine:
    """Factory function to create audit engines.

    Args:
        engine: Engine type ("cli" or "chromium")
        **kwargs: Engine-specific configuration

    Returns:
        Configured AuditEngine instance
    """
    if engine.lower() == EngineType.CLI:
        kwargs.pop("headless", None)
        return LighthouseCliEngine(**kwargs)
    elif engine.lower() == EngineType.CHROMIUM:
        return ChromiumLighthouseEngine(**kwargs)
    else:
        raise ValueError(f"Unsupported audit engine: {engine}")
