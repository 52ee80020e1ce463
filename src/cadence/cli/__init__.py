"""Cadence CLI.

Built with Typer; command logic lives in ``cli/commands``, Rich formatting
in ``cli/output.py`` and shared option state in ``cli/helpers.py``.

Package structure:
    cli/
    ├── __init__.py      # app assembly and global options
    ├── helpers.py       # option state, logging setup, engine construction
    ├── output.py        # Rich console, colors, tables
    └── commands/
        ├── ingest.py    # ingest
        ├── patterns.py  # patterns
        ├── insights.py  # insights, apply, rollback
        └── report.py    # report, metric
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from cadence import __version__

from . import helpers as helpers
from .commands import apply, ingest, insights, metric, patterns, report, rollback
from .helpers import (
    configure_global_logging,
    set_config_path,
    set_db_path,
    set_log_format,
    set_log_level,
)
from .output import console

# =============================================================================
# Typer app definition
# =============================================================================

app = typer.Typer(
    name="cadence",
    help="Adaptive pattern learning for hook and rule runners",
    add_completion=False,
)


# =============================================================================
# Global option callbacks
# =============================================================================


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Cadence v{__version__}")
        raise typer.Exit()


def db_callback(value: Path | None) -> Path | None:
    if value:
        set_db_path(value)
    return value


def config_callback(value: Path | None) -> Path | None:
    if value:
        set_config_path(value)
    return value


def log_level_callback(value: str | None) -> str | None:
    if value:
        set_log_level(value)
    return value


def log_format_callback(value: str | None) -> str | None:
    if value:
        set_log_format(value)
    return value


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    db: Annotated[
        Path | None,
        typer.Option(
            "--db",
            callback=db_callback,
            help="SQLite learning database (default ~/.cadence/learning.db)",
            envvar="CADENCE_DB",
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            callback=config_callback,
            help="YAML engine configuration",
            envvar="CADENCE_CONFIG",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="CADENCE_LOG_LEVEL",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log format: json or console",
            envvar="CADENCE_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """Cadence - learn from hook executions and tune hooks with insights."""
    configure_global_logging(console)


# =============================================================================
# Command registration
# =============================================================================

app.command()(ingest)
app.command()(patterns)
app.command()(insights)
app.command()(apply)
app.command()(rollback)
app.command()(report)
app.command()(metric)


__all__ = ["app"]
