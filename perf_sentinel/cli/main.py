#!/usr/bin/env python3
"""Main CLI entry point for Perf Sentinel using Typer.

``perf-sentinel --dev`` runs one batch immediately and exits; without
``--dev`` the process stays up and runs a batch on every cron tick
(hourly at minute 0 by default).
"""

import asyncio
from enum import IntEnum
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from .. import __version__
from ..config import load_configuration, print_configuration, require_valid_configuration
from ..errors import ConfigurationError
from ..logging_config import configure_logging
from ..service import create_service


class ExitCode(IntEnum):
    """Process exit codes."""
    SUCCESS = 0
    CONFIG_ERROR = 3


app = typer.Typer(
    name="perf-sentinel",
    help="Perf Sentinel - scheduled Lighthouse audits published to Sheets and S3",
    add_completion=False,
    rich_markup_mode="rich"
)


DevOption = Annotated[
    bool,
    typer.Option("--dev", help="Run one batch now instead of scheduling")
]
ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to YAML or JSON configuration file")
]


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context, dev: DevOption = False, config: ConfigOption = None):
    """
    Perf Sentinel - audit pages with Lighthouse on a schedule.

    Each batch audits every configured URL on desktop and mobile, appends a
    row per audit to the results sheet and archives the HTML report.
    """
    if ctx.invoked_subcommand is None:
        execute(dev=dev, config_file=config)


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"Perf Sentinel v{__version__}")


@app.command()
def run(
    dev: DevOption = False,
    config: ConfigOption = None,
    urls: Annotated[
        Optional[List[str]],
        typer.Option("--url", "-u", help="URL to audit (repeatable, overrides TARGET_URL)")
    ] = None,
    print_config: Annotated[
        bool,
        typer.Option("--print-config", help="Print effective configuration and exit")
    ] = False,
):
    """
    Run the audit pipeline.

    Examples:

        # One batch now
        perf-sentinel run --dev --url https://example.com

        # Hourly service using .env / environment configuration
        perf-sentinel run
    """
    execute(dev=dev, config_file=config, urls=urls, print_config=print_config)


def execute(
    dev: bool = False,
    config_file: Optional[Path] = None,
    urls: Optional[List[str]] = None,
    print_config: bool = False,
) -> None:
    cli_overrides = {}
    if urls:
        cli_overrides["urls"] = urls

    try:
        configuration = load_configuration(config_file=config_file, cli_overrides=cli_overrides)
    except (FileNotFoundError, ValueError, ValidationError) as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    if print_config:
        typer.echo(print_configuration(configuration))
        raise typer.Exit(code=ExitCode.SUCCESS.value)

    try:
        require_valid_configuration(configuration)
    except ConfigurationError as e:
        for problem in e.errors:
            typer.echo(f"❌ {problem}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    configure_logging(configuration.logging)
    service = create_service(configuration)

    if dev:
        asyncio.run(service.run_batch())
        return

    scheduler = service.scheduler()
    try:
        asyncio.run(scheduler.run_forever())
    except KeyboardInterrupt:
        typer.echo("\n🛑 Scheduler stopped")


if __name__ == "__main__":
    app()
