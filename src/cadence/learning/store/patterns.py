"""Pattern mixin for LearningStore.

``update_pattern`` is the per-key atomic read-modify-write: the load and the
store run inside one ``BEGIN IMMEDIATE`` transaction, so concurrent
hook-runner processes updating the same key serialize instead of losing
updates.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from contextlib import AbstractContextManager

from cadence.core.logging import CadenceLogger
from cadence.learning.gateway import PatternUpdate
from cadence.learning.patterns import PatternKey, PatternModel
from cadence.learning.store.codec import SQLParam, pattern_from_storage, pattern_to_storage


class PatternMixin:
    """Mixin providing pattern methods for LearningStore.

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
    def _select_pattern(conn: sqlite3.Connection, key: PatternKey) -> PatternModel | None:
        row = conn.execute(
            """
            SELECT * FROM patterns
            WHERE hook_name = ? AND pattern_type = ? AND pattern_key = ?
            """,
            (key.hook_name, key.pattern_type.value, key.pattern_key),
        ).fetchone()
        return pattern_from_storage(row) if row else None

    def upsert_pattern(self, key: PatternKey, model: PatternModel) -> None:
        if model.key != key:
            raise ValueError(f"Pattern {model.pattern_id} does not match key {key.pattern_id}")
        with self._get_connection() as conn:
            self._upsert_row(conn, "patterns", pattern_to_storage(model))

    def load_pattern(self, key: PatternKey) -> PatternModel | None:
        with self._get_connection() as conn:
            return self._select_pattern(conn, key)

    def update_pattern(self, key: PatternKey, fn: PatternUpdate) -> PatternModel:
        with self._transaction() as conn:
            current = self._select_pattern(conn, key)
            updated = fn(current)
            if updated.key != key:
                raise ValueError(
                    f"Pattern update changed identity {key.pattern_id} -> {updated.pattern_id}"
                )
            self._upsert_row(conn, "patterns", pattern_to_storage(updated))
        if current is None:
            self._logger.debug("pattern_created", pattern_id=key.pattern_id)
        return updated

    def query_patterns_by_hook(self, hook_name: str) -> list[PatternModel]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM patterns WHERE hook_name = ? ORDER BY pattern_type, pattern_key",
                (hook_name,),
            ).fetchall()
        return [pattern_from_storage(row) for row in rows]

    def list_hook_names(self) -> list[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT DISTINCT hook_name FROM patterns ORDER BY hook_name"
            ).fetchall()
        return [row["hook_name"] for row in rows]
