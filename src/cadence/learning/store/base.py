"""Base class for LearningStore with connection and schema management.

Provides the foundational ``LearningStoreBase`` class that handles:
- SQLite connection management (WAL journal, busy timeout)
- ``BEGIN IMMEDIATE`` transactions for atomic read-modify-write
- Schema creation
- Wrapping of sqlite3 failures in PersistenceError

Mixins inherit from this base to add domain-specific functionality.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from cadence.core.config import DEFAULT_STORE_PATH
from cadence.core.errors import PersistenceError
from cadence.core.logging import get_logger
from cadence.learning.store.codec import SQLParam

_logger = get_logger("learning.store")


class WhereBuilder:
    """Accumulates SQL WHERE clauses and their bound parameters.

    Clauses are joined with AND::

        wb = WhereBuilder()
        wb.add("hook_name = ?", hook_name)
        where_sql, params = wb.build()
        conn.execute(f"SELECT * FROM patterns WHERE {where_sql}", params)
    """

    __slots__ = ("_clauses", "_params")

    def __init__(self) -> None:
        self._clauses: list[str] = []
        self._params: list[SQLParam] = []

    def add(self, clause: str, *params: SQLParam) -> None:
        self._clauses.append(clause)
        self._params.extend(params)

    def build(self) -> tuple[str, tuple[SQLParam, ...]]:
        """Return the combined WHERE fragment and parameter tuple.

        Returns ``("1=1", ())`` when no clauses have been added.
        """
        if not self._clauses:
            return "1=1", ()
        return " AND ".join(self._clauses), tuple(self._params)


class LearningStoreBase:
    """SQLite persistence for the learning engine.

    Several hook-runner processes may share one database file. Plain reads
    and single-row writes use ``_get_connection()``; read-modify-write
    sequences use ``_transaction()``, which takes the write lock up front so
    two processes cannot interleave a load and a store on the same row.

    Attributes:
        db_path: Path to the SQLite database file.
        busy_timeout_ms: How long to wait for a competing writer.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | None = None, busy_timeout_ms: int = 30000) -> None:
        self.db_path = Path(db_path) if db_path else DEFAULT_STORE_PATH
        self.busy_timeout_ms = busy_timeout_ms
        self._logger = _logger
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._migrate_if_needed()

    def _connect(self, isolation_level: str | None = "") -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000,
            isolation_level=isolation_level,
        )
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Connection that commits on success and rolls back on error.

        Raises:
            PersistenceError: If any sqlite3 operation fails.
        """
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise self._persistence_error("connect", e) from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise self._persistence_error("query", e) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Write transaction holding the database lock from the first read.

        Raises:
            PersistenceError: If any sqlite3 operation fails.
        """
        try:
            conn = self._connect(isolation_level=None)
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise self._persistence_error("begin", e) from e
        try:
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise self._persistence_error("transaction", e) from e
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _persistence_error(self, operation: str, error: sqlite3.Error) -> PersistenceError:
        self._logger.warning(
            "store_operation_failed",
            operation=operation,
            db_path=str(self.db_path),
            error_type=type(error).__name__,
            error=str(error),
        )
        return PersistenceError(f"Store {operation} failed on {self.db_path}: {error}")

    @staticmethod
    def _upsert_row(conn: sqlite3.Connection, table: str, row: dict[str, SQLParam]) -> None:
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        conn.execute(
            f"INSERT OR REPLACE INTO {table} ({columns}) VALUES ({placeholders})",
            tuple(row.values()),
        )

    def close(self) -> None:
        """No-op: connections are opened per operation."""

    def _migrate_if_needed(self) -> None:
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            try:
                row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
                current_version = row["version"] if row else 0
            except sqlite3.OperationalError:
                current_version = 0

            if current_version < self.SCHEMA_VERSION:
                self._create_schema(conn)

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        self._create_schema_version_table(conn)
        self._create_executions_table(conn)
        self._create_patterns_table(conn)
        self._create_insights_table(conn)
        self._create_metrics_table(conn)

        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,)
        )
        self._logger.info("schema_created", version=self.SCHEMA_VERSION, db_path=str(self.db_path))

    @staticmethod
    def _create_schema_version_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            )
        """)

    @staticmethod
    def _create_executions_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                hook_name TEXT NOT NULL,
                hook_family TEXT,
                hook_priority TEXT,
                duration_ms REAL NOT NULL,
                success INTEGER NOT NULL,
                blocked INTEGER NOT NULL,
                file_path TEXT,
                file_extension TEXT,
                content_hash TEXT,
                context TEXT,
                timestamp TEXT NOT NULL,
                exit_code INTEGER,
                error_message TEXT,
                parallel INTEGER DEFAULT 0
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_exec_hook_time "
            "ON executions(hook_name, timestamp)"
        )

    @staticmethod
    def _create_patterns_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS patterns (
                id TEXT PRIMARY KEY,
                hook_name TEXT NOT NULL,
                pattern_type TEXT NOT NULL,
                pattern_key TEXT NOT NULL,
                first_seen TEXT NOT NULL,
                last_seen TEXT NOT NULL,
                last_updated TEXT NOT NULL,
                total_count INTEGER DEFAULT 0,
                success_count INTEGER DEFAULT 0,
                failure_count INTEGER DEFAULT 0,
                block_count INTEGER DEFAULT 0,
                mean_execution_ms REAL DEFAULT 0.0,
                m2_execution REAL DEFAULT 0.0,
                false_positive_count INTEGER DEFAULT 0,
                false_negative_count INTEGER DEFAULT 0,
                confidence REAL DEFAULT 0.0,
                adaptation_history TEXT,
                related_patterns TEXT,
                metadata TEXT,
                UNIQUE (hook_name, pattern_type, pattern_key)
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_patterns_hook ON patterns(hook_name)"
        )

    @staticmethod
    def _create_insights_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS insights (
                id TEXT PRIMARY KEY,
                insight_type TEXT NOT NULL,
                payload TEXT NOT NULL,
                confidence REAL,
                priority TEXT,
                hook_name TEXT,
                hook_family TEXT,
                source TEXT,
                category TEXT,
                estimated_impact REAL,
                actual_impact REAL,
                affected_hooks TEXT,
                related_patterns TEXT,
                status TEXT NOT NULL,
                applied INTEGER DEFAULT 0,
                applied_at TEXT,
                applied_by TEXT,
                rollback_at TEXT,
                rollback_reason TEXT,
                automatic_actions TEXT,
                validation_results TEXT,
                user_feedback TEXT,
                expires_at TEXT,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_insights_status ON insights(status)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_insights_created ON insights(created_at)"
        )

    @staticmethod
    def _create_metrics_table(conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS metrics (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                value REAL,
                kind TEXT NOT NULL,
                unit TEXT,
                timestamp TEXT NOT NULL,
                source TEXT,
                aggregation_period TEXT,
                tags TEXT,
                dimensions TEXT,
                context TEXT,
                min REAL,
                max REAL,
                avg REAL,
                std_dev REAL,
                count INTEGER,
                sum REAL,
                p50 REAL,
                p75 REAL,
                p90 REAL,
                p95 REAL,
                p99 REAL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_metrics_name_time ON metrics(name, timestamp)"
        )


__all__ = ["LearningStoreBase", "WhereBuilder"]
