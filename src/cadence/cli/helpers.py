"""Shared CLI state: global options, logging setup and engine construction."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import typer
from pydantic import ValidationError as ConfigValidationError
from rich.console import Console

from cadence.core.config import EngineConfig
from cadence.core.logging import configure_logging
from cadence.learning.engine import LearningEngine
from cadence.learning.store import LearningStore

# =============================================================================
# Global option state
# =============================================================================


@dataclass
class CliState:
    """Values of the global options, set by callbacks before any command runs."""

    db_path: Path | None = None
    config_path: Path | None = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    log_format: Literal["json", "console", "both"] = "console"
    logging_configured: bool = False


_state = CliState()


def get_state() -> CliState:
    return _state


def set_db_path(path: Path | None) -> None:
    _state.db_path = path


def set_config_path(path: Path | None) -> None:
    _state.config_path = path


def set_log_level(level: str) -> None:
    """Set the log level (DEBUG, INFO, WARNING, ERROR)."""
    _state.log_level = level.upper()  # type: ignore[assignment]


def set_log_format(fmt: str) -> None:
    """Set the log format (json, console, both)."""
    _state.log_format = fmt  # type: ignore[assignment]


def reset_state() -> None:
    """Reset global option state (primarily for testing)."""
    global _state
    _state = CliState()


# =============================================================================
# Logging configuration
# =============================================================================


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global options once per session.

    Raises:
        typer.Exit: If the logging options are inconsistent.
    """
    if _state.logging_configured:
        return
    try:
        configure_logging(level=_state.log_level, format=_state.log_format)
        _state.logging_configured = True
    except ValueError as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


# =============================================================================
# Engine construction
# =============================================================================


def load_config(console: Console) -> EngineConfig:
    """Load the --config file (if any) and apply --db on top.

    Raises:
        typer.Exit: If the config file is missing or invalid.
    """
    config = EngineConfig()
    if _state.config_path is not None:
        if not _state.config_path.exists():
            console.print(f"[red]Config file not found:[/red] {_state.config_path}")
            raise typer.Exit(1)
        try:
            config = EngineConfig.from_yaml(_state.config_path)
        except ConfigValidationError as e:
            console.print(f"[red]Invalid configuration:[/red] {e}")
            raise typer.Exit(1) from None
    if _state.db_path is not None:
        config.store.path = _state.db_path
    return config


def get_engine(console: Console) -> LearningEngine:
    """Build a LearningEngine over the configured SQLite store."""
    config = load_config(console)
    store = LearningStore(config.store.path, busy_timeout_ms=config.store.busy_timeout_ms)
    return LearningEngine(store, config)
