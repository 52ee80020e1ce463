"""Metric-sample mixin for LearningStore."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from contextlib import AbstractContextManager

from cadence.learning.metrics import MetricSummary
from cadence.learning.store.codec import SQLParam, metric_from_storage, metric_to_storage


class MetricMixin:
    """Mixin providing metric methods for LearningStore.

    This mixin requires that the composed class provides:
    - _get_connection(): Context manager yielding sqlite3.Connection
    - _upsert_row(conn, table, row): Static INSERT OR REPLACE helper
    """

    _get_connection: Callable[[], AbstractContextManager[sqlite3.Connection]]
    _upsert_row: Callable[[sqlite3.Connection, str, dict[str, SQLParam]], None]

    def insert_metric(self, sample: MetricSummary) -> None:
        with self._get_connection() as conn:
            self._upsert_row(conn, "metrics", metric_to_storage(sample))

    def query_recent_metrics(self, metric_name: str, window_size: int) -> list[MetricSummary]:
        """Return up to ``window_size`` most recent samples, oldest first."""
        if window_size <= 0:
            return []
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM metrics
                WHERE name = ?
                ORDER BY timestamp DESC
                LIMIT ?
                """,
                (metric_name, window_size),
            ).fetchall()
        return [metric_from_storage(row) for row in reversed(rows)]
