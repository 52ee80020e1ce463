"""Pytest fixtures for Cadence tests."""

from __future__ import annotations

import logging
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import structlog

from cadence.cli.helpers import reset_state
from cadence.learning.gateway import InMemoryGateway
from cadence.learning.records import ExecutionRecord
from cadence.learning.store import LearningStore

# Fixed reference time so scoring is reproducible (a Monday, 12:00 UTC)
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging and CLI option state before and after each test."""
    reset_state()
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    reset_state()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_record() -> Any:
    """Factory for execution records with sensible defaults."""

    def _make(**overrides: Any) -> ExecutionRecord:
        fields: dict[str, Any] = {
            "hook_name": "format-check",
            "duration_ms": 250.0,
            "hook_family": "formatting",
            "hook_priority": "high",
            "file_path": "src/app/main.py",
            "timestamp": NOW - timedelta(minutes=5),
        }
        fields.update(overrides)
        return ExecutionRecord(**fields)

    return _make


@pytest.fixture
def memory_gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def store(tmp_path: Path) -> LearningStore:
    """A LearningStore on a fresh database file."""
    return LearningStore(tmp_path / "learning.db", busy_timeout_ms=5000)


@pytest.fixture(params=["memory", "sqlite"])
def gateway(request: pytest.FixtureRequest, tmp_path: Path) -> Any:
    """Each PersistenceGateway implementation in turn."""
    if request.param == "memory":
        return InMemoryGateway()
    return LearningStore(tmp_path / "learning.db", busy_timeout_ms=5000)
