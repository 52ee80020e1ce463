"""SQLite learning store composed from mixins.

This package provides the LearningStore class, the SQLite implementation
of PersistenceGateway, composed from one mixin per domain:

- ExecutionMixin: execution records and recent-window queries
- PatternMixin: pattern upsert, load, and atomic per-key update
- InsightMixin: insight storage and atomic lifecycle transitions
- MetricMixin: metric samples and recent-window queries

The base class (LearningStoreBase) provides connection management,
``BEGIN IMMEDIATE`` transactions and schema creation. It is listed after
the mixins in the MRO so they can use ``self._get_connection()`` and
``self._logger``.

Usage:
    from cadence.learning.store import LearningStore

    store = LearningStore()  # Uses default ~/.cadence/learning.db
    store = LearningStore(db_path=Path("/custom/path.db"))
"""

from cadence.learning.gateway import PersistenceGateway
from cadence.learning.store.base import LearningStoreBase, WhereBuilder
from cadence.learning.store.executions import ExecutionMixin
from cadence.learning.store.insights import InsightMixin
from cadence.learning.store.metrics import MetricMixin
from cadence.learning.store.patterns import PatternMixin


class LearningStore(
    PatternMixin,
    ExecutionMixin,
    InsightMixin,
    MetricMixin,
    LearningStoreBase,
    PersistenceGateway,
):
    """SQLite-backed PersistenceGateway shared by hook-runner processes."""


__all__ = [
    "ExecutionMixin",
    "InsightMixin",
    "LearningStore",
    "LearningStoreBase",
    "MetricMixin",
    "PatternMixin",
    "WhereBuilder",
]
