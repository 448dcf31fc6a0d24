"""Tests for audit engine bindings.

A small Python script stands in for the Lighthouse binary: it honours
--output-path the way Lighthouse does for multi-format output and records
the arguments it received.
"""

import asyncio
import json
import os
import shlex
import sys
import time
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from perf_sentinel.audit import engine as engine_module
from perf_sentinel.audit.devices import DESKTOP, MOBILE
from perf_sentinel.audit.engine import (
    ChromiumLighthouseEngine,
    LighthouseCliEngine,
    create_audit_engine,
    find_free_port,
    report_paths,
)
from perf_sentinel.errors import AuditEngineError


FAKE_LIGHTHOUSE = '''
import json
import sys
import time

args = sys.argv[1:]
mode = {mode!r}
stem = next(a.split("=", 1)[1] for a in args if a.startswith("--output-path="))

with open(stem + ".args.json", "w") as f:
    json.dump(args, f)

if mode == "fail":
    sys.stderr.write("Runtime error encountered: Chrome prevented page load")
    sys.exit(1)
if mode == "hang":
    time.sleep(30)
if mode == "orphan":
    import subprocess
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
    with open(stem + ".child.pid", "w") as f:
        f.write(str(child.pid))
    sys.stderr.write("Chrome crashed")
    sys.exit(1)
if mode == "no-report":
    sys.exit(0)

lhr = {{
    "finalUrl": args[0],
    "userAgent": "HeadlessChrome",
    "categories": {{"performance": {{"score": 0.75}}, "seo": {{"score": None}}}},
}}
with open(stem + ".report.json", "w") as f:
    json.dump(lhr, f)
with open(stem + ".report.html", "w") as f:
    f.write("<html>report</html>")
'''


def make_fake_lighthouse(tmp_path: Path, mode: str = "ok") -> str:
    script = tmp_path / f"fake_lighthouse_{mode}.py"
    script.write_text(FAKE_LIGHTHOUSE.format(mode=mode))
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"


def recorded_args(output_stem: Path):
    return json.loads(Path(str(output_stem) + ".args.json").read_text())


def process_alive(pid: int) -> bool:
    """True while ``pid`` exists and is not a zombie."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    try:
        stat = Path(f"/proc/{pid}/stat").read_text()
    except FileNotFoundError:
        # gone in between, or no procfs to tell zombies apart
        return not Path("/proc").is_dir()
    return stat.rsplit(")", 1)[1].split()[0] != "Z"


class TestBuildCommand:
    """Test Lighthouse command construction."""

    def test_desktop_command(self, tmp_path):
        """Test the desktop command line."""
        engine = LighthouseCliEngine(lighthouse_path="npx lighthouse")
        command = engine.build_command("https://example.com", DESKTOP, tmp_path / "stem")

        assert command[:3] == ["npx", "lighthouse", "https://example.com"]
        assert "--output=html" in command
        assert "--output=json" in command
        assert f"--output-path={tmp_path / 'stem'}" in command
        assert "--form-factor=desktop" in command
        assert "--screenEmulation.disabled" in command
        assert "--chrome-flags=--headless" in command

    def test_mobile_command_encodes_emulation(self, tmp_path):
        """Test mobile emulation settings are passed as flags."""
        engine = LighthouseCliEngine(chrome_flags=["--headless", "--no-sandbox"])
        command = engine.build_command("https://example.com", MOBILE, tmp_path / "stem")

        assert "--form-factor=mobile" in command
        assert "--screenEmulation.mobile=true" in command
        assert "--screenEmulation.width=412" in command
        assert "--screenEmulation.deviceScaleFactor=1.75" in command
        assert "--chrome-flags=--headless --no-sandbox" in command

    def test_port_replaces_chrome_flags(self, tmp_path):
        """Test a debugging port replaces Chrome launch flags."""
        engine = LighthouseCliEngine()
        command = engine.build_command("https://example.com", MOBILE, tmp_path / "stem", port=9333)

        assert "--port=9333" in command
        assert not any(arg.startswith("--chrome-flags") for arg in command)


class TestLighthouseCliEngine:
    """Test the subprocess engine against a fake Lighthouse binary."""

    async def test_successful_run(self, tmp_path):
        """Test a run returns the parsed report and HTML artifact."""
        engine = LighthouseCliEngine(lighthouse_path=make_fake_lighthouse(tmp_path))
        stem = tmp_path / "run"

        report = await engine.audit("https://example.com", DESKTOP, stem)

        assert report.final_url == "https://example.com"
        assert report.categories == {"performance": 0.75, "seo": None}
        assert report.user_agent == "HeadlessChrome"
        assert report.artifact == b"<html>report</html>"
        assert "--form-factor=desktop" in recorded_args(stem)

    async def test_non_zero_exit_raises(self, tmp_path):
        """Test a non-zero exit raises with the stderr tail."""
        engine = LighthouseCliEngine(lighthouse_path=make_fake_lighthouse(tmp_path, "fail"))

        with pytest.raises(AuditEngineError) as exc_info:
            await engine.audit("https://example.com", MOBILE, tmp_path / "run")

        assert "exited with code 1" in str(exc_info.value)
        assert "Chrome prevented page load" in str(exc_info.value)

    @pytest.mark.slow
    async def test_timeout_kills_process(self, tmp_path):
        """Test a hung run is killed at the timeout."""
        engine = LighthouseCliEngine(lighthouse_path=make_fake_lighthouse(tmp_path, "hang"), timeout_seconds=0.5)

        started = time.monotonic()
        with pytest.raises(AuditEngineError) as exc_info:
            await engine.audit("https://example.com", MOBILE, tmp_path / "run")

        assert "timed out" in str(exc_info.value)
        assert time.monotonic() - started < 10

    @pytest.mark.skipif(not hasattr(os, "killpg"), reason="process groups are POSIX only")
    async def test_leftover_child_is_killed_after_exit(self, tmp_path):
        """Test processes Lighthouse leaves behind are killed with its group."""
        engine = LighthouseCliEngine(lighthouse_path=make_fake_lighthouse(tmp_path, "orphan"), timeout_seconds=20)
        stem = tmp_path / "run"

        started = time.monotonic()
        with pytest.raises(AuditEngineError) as exc_info:
            await engine.audit("https://example.com", MOBILE, stem)

        assert "exited with code 1" in str(exc_info.value)
        assert "Chrome crashed" in str(exc_info.value)
        assert time.monotonic() - started < 10

        child_pid = int(Path(str(stem) + ".child.pid").read_text())
        for _ in range(100):
            if not process_alive(child_pid):
                break
            await asyncio.sleep(0.05)
        assert not process_alive(child_pid)

    async def test_missing_report_raises(self, tmp_path):
        """Test a run without report files raises."""
        engine = LighthouseCliEngine(lighthouse_path=make_fake_lighthouse(tmp_path, "no-report"))

        with pytest.raises(AuditEngineError, match="produced no report"):
            await engine.audit("https://example.com", MOBILE, tmp_path / "run")

    async def test_missing_binary_raises(self, tmp_path):
        """Test a missing binary raises AuditEngineError."""
        engine = LighthouseCliEngine(lighthouse_path=str(tmp_path / "does-not-exist"))

        with pytest.raises(AuditEngineError, match="Failed to start Lighthouse"):
            await engine.audit("https://example.com", MOBILE, tmp_path / "run")

    async def test_malformed_json_raises(self, tmp_path):
        """Test unreadable JSON reports raise."""
        stem = tmp_path / "broken"
        html_path, json_path = report_paths(stem)
        html_path.write_text("<html></html>")
        json_path.write_text("{not json")

        with pytest.raises(AuditEngineError, match="Unreadable"):
            LighthouseCliEngine._load_report(stem, "https://example.com")


def _fake_playwright(launch_side_effect=None):
    browser = MagicMock()
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser, side_effect=launch_side_effect)
    playwright.stop = AsyncMock()

    factory = MagicMock()
    factory.return_value.start = AsyncMock(return_value=playwright)
    return factory, playwright, browser


class TestChromiumLighthouseEngine:
    """Test the engine that owns its Chromium instance."""

    async def test_browser_is_launched_on_port_and_closed(self, tmp_path, monkeypatch):
        """Test Chromium is launched on a free port and closed after the run."""
        factory, playwright, browser = _fake_playwright()
        monkeypatch.setattr(engine_module, "async_playwright", factory)
        engine = ChromiumLighthouseEngine(lighthouse_path=make_fake_lighthouse(tmp_path))
        stem = tmp_path / "run"

        report = await engine.audit("https://example.com", MOBILE, stem)

        assert report.categories["performance"] == 0.75
        launch_args = playwright.chromium.launch.call_args.kwargs["args"]
        port_arg = next(arg for arg in launch_args if arg.startswith("--remote-debugging-port="))
        port = port_arg.split("=", 1)[1]
        assert f"--port={port}" in recorded_args(stem)
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()

    async def test_browser_is_closed_when_lighthouse_fails(self, tmp_path, monkeypatch):
        """Test Chromium is closed when Lighthouse fails."""
        factory, playwright, browser = _fake_playwright()
        monkeypatch.setattr(engine_module, "async_playwright", factory)
        engine = ChromiumLighthouseEngine(lighthouse_path=make_fake_lighthouse(tmp_path, "fail"))

        with pytest.raises(AuditEngineError):
            await engine.audit("https://example.com", DESKTOP, tmp_path / "run")

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()

    async def test_launch_failure_raises_engine_error(self, tmp_path, monkeypatch):
        """Test a Chromium launch failure raises AuditEngineError."""
        factory, playwright, browser = _fake_playwright(
            launch_side_effect=PlaywrightError("Executable doesn't exist")
        )
        monkeypatch.setattr(engine_module, "async_playwright", factory)
        engine = ChromiumLighthouseEngine(lighthouse_path=make_fake_lighthouse(tmp_path))

        with pytest.raises(AuditEngineError, match="Failed to launch Chromium"):
            await engine.audit("https://example.com", DESKTOP, tmp_path / "run")

        browser.close.assert_not_awaited()
        playwright.stop.assert_awaited_once()


class TestEngineFactory:
    """Test engine factory and helpers."""

    def test_create_cli_engine(self):
        """Test the CLI engine is selected by name."""
        engine = create_audit_engine("cli", lighthouse_path="lh", timeout_seconds=60, headless=True)
        assert isinstance(engine, LighthouseCliEngine)
        assert not isinstance(engine, ChromiumLighthouseEngine)
        assert engine.timeout_seconds == 60

    def test_create_chromium_engine(self):
        """Test the Chromium engine is selected by name."""
        engine = create_audit_engine("chromium", headless=False)
        assert isinstance(engine, ChromiumLighthouseEngine)
        assert engine.headless is False

    def test_unknown_engine(self):
        """Test unknown engines are rejected."""
        with pytest.raises(ValueError):
            create_audit_engine("webpagetest")

    def test_find_free_port(self):
        """Test a usable port number is returned."""
        port = find_free_port()
        assert 0 < port < 65536
