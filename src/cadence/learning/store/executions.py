"""Execution-record mixin for LearningStore."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from contextlib import AbstractContextManager

from cadence.core.logging import CadenceLogger
from cadence.learning.records import ExecutionRecord
from cadence.learning.store.codec import execution_from_storage, execution_to_storage


class ExecutionMixin:
    """Mixin providing execution-record methods for LearningStore.

    This mixin requires that the composed class provides:
    - _get_connection(): Context manager yielding sqlite3.Connection
    - _logger: Logger instance for logging
    """

    _logger: CadenceLogger
    _get_connection: Callable[[], AbstractContextManager[sqlite3.Connection]]

    def insert_execution(self, record: ExecutionRecord) -> None:
        row = execution_to_storage(record)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        with self._get_connection() as conn:
            conn.execute(
                f"INSERT INTO executions ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
        self._logger.debug("execution_stored", record_id=record.id, hook_name=record.hook_name)

    def query_recent_executions(self, hook_name: str, limit: int) -> list[ExecutionRecord]:
        """Return up to ``limit`` most recent executions, oldest first."""
        if limit <= 0:
            return []
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM executions
                WHERE hook_name = ?
                ORDER BY timestamp DESC
                LIMIT ?
                """,
                (hook_name, limit),
            ).fetchall()
        return [execution_from_storage(row) for row in reversed(rows)]
