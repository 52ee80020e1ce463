"""Insight mixin for LearningStore.

Lifecycle transitions run through ``update_insight``, which loads the row,
applies the transition and stores the result inside one ``BEGIN IMMEDIATE``
transaction. Two processes applying the same insight therefore see it in
sequence and the second is rejected as already applied.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Any

from cadence.core.errors import OperationResult
from cadence.core.logging import CadenceLogger
from cadence.learning.gateway import InsightTransition
from cadence.learning.insights import Insight, InsightStatus
from cadence.learning.store.base import WhereBuilder
from cadence.learning.store.codec import SQLParam, insight_from_storage, insight_to_storage


class InsightMixin:
    """Mixin providing insight methods for LearningStore.

    This mixin requires that the composed class provides:
    - _get_connection(): Context manager yielding sqlite3.Connection
    - _transaction(): Context manager yielding a connection inside BEGIN IMMEDIATE
    - _upsert_row(conn, table, row): Static INSERT OR REPLACE helper
    - _logger: Logger instance for logging
    """

    _logger: CadenceLogger
    _get_connection: Callable[[], AbstractContextManager[sqlite3.Connection]]
    _transaction: Callable[[], AbstractContextManager[sqlite3.Connection]]
    _upsert_row: Callable[[sqlite3.Connection, str, dict[str, SQLParam]], None]

    @staticmethod
    def _select_insight(conn: sqlite3.Connection, insight_id: str) -> Insight | None:
        row = conn.execute("SELECT * FROM insights WHERE id = ?", (insight_id,)).fetchone()
        return insight_from_storage(row) if row else None

    def insert_insight(self, insight: Insight) -> None:
        with self._get_connection() as conn:
            self._upsert_row(conn, "insights", insight_to_storage(insight))
        self._logger.debug(
            "insight_stored", insight_id=insight.id, insight_type=insight.insight_type.value
        )

    def load_insight(self, insight_id: str) -> Insight | None:
        with self._get_connection() as conn:
            return self._select_insight(conn, insight_id)

    def update_insight_status(
        self, insight_id: str, status: InsightStatus, fields: dict[str, Any] | None = None
    ) -> bool:
        with self._transaction() as conn:
            insight = self._select_insight(conn, insight_id)
            if insight is None:
                return False
            insight.status = status
            for name, value in (fields or {}).items():
                if not hasattr(insight, name):
                    raise ValueError(f"Unknown insight field: {name}")
                setattr(insight, name, value)
            self._upsert_row(conn, "insights", insight_to_storage(insight))
        return True

    def update_insight(self, insight_id: str, fn: InsightTransition) -> OperationResult:
        with self._transaction() as conn:
            insight = self._select_insight(conn, insight_id)
            if insight is None:
                return OperationResult.rejected(f"Insight {insight_id} not found")
            result = fn(insight)
            if result.success:
                self._upsert_row(conn, "insights", insight_to_storage(insight))
        return result

    def query_recent_insights(
        self, limit: int = 20, status: InsightStatus | None = None
    ) -> list[Insight]:
        wb = WhereBuilder()
        if status is not None:
            wb.add("status = ?", status.value)
        where_sql, params = wb.build()
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM insights WHERE {where_sql} ORDER BY created_at DESC LIMIT ?",
                (*params, limit),
            ).fetchall()
        return [insight_from_storage(row) for row in rows]
