"""Persistence gateway contract and an in-memory implementation.

The learning core never locks. It relies on the gateway to make each
pattern update an atomic read-modify-write per pattern key, and each
insight transition atomic per insight id. ``update_pattern`` and
``update_insight`` are those atomic operations; every other method is a
plain read or write.
"""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from cadence.core.errors import OperationResult
from cadence.learning.insights import Insight, InsightStatus
from cadence.learning.metrics import MetricSummary
from cadence.learning.patterns import PatternKey, PatternModel
from cadence.learning.records import ExecutionRecord

PatternUpdate = Callable[[PatternModel | None], PatternModel]
InsightTransition = Callable[[Insight], OperationResult]


class PersistenceGateway(ABC):
    """Durable storage for records, patterns, insights and metrics.

    Query methods returning a window return it in chronological order
    (oldest first) unless stated otherwise.
    """

    # Executions

    @abstractmethod
    def insert_execution(self, record: ExecutionRecord) -> None:
        ...

    @abstractmethod
    def query_recent_executions(self, hook_name: str, limit: int) -> list[ExecutionRecord]:
        """Return the ``limit`` most recent executions of a hook."""
        ...

    # Patterns

    @abstractmethod
    def upsert_pattern(self, key: PatternKey, model: PatternModel) -> None:
        ...

    @abstractmethod
    def load_pattern(self, key: PatternKey) -> PatternModel | None:
        ...

    @abstractmethod
    def update_pattern(self, key: PatternKey, fn: PatternUpdate) -> PatternModel:
        """Atomically load, transform and store one pattern.

        Args:
            key: Pattern identity.
            fn: Receives the stored model (None if absent) and returns the
                replacement.

        Returns:
            The stored replacement.
        """
        ...

    @abstractmethod
    def query_patterns_by_hook(self, hook_name: str) -> list[PatternModel]:
        ...

    @abstractmethod
    def list_hook_names(self) -> list[str]:
        """Hook names with at least one stored pattern, sorted."""
        ...

    # Insights

    @abstractmethod
    def insert_insight(self, insight: Insight) -> None:
        ...

    @abstractmethod
    def load_insight(self, insight_id: str) -> Insight | None:
        ...

    @abstractmethod
    def update_insight_status(
        self, insight_id: str, status: InsightStatus, fields: dict[str, Any] | None = None
    ) -> bool:
        """Set status and any other insight attributes.

        Returns:
            False if the insight does not exist.
        """
        ...

    @abstractmethod
    def update_insight(self, insight_id: str, fn: InsightTransition) -> OperationResult:
        """Atomically run a lifecycle transition against one insight.

        The insight is stored only when the transition succeeds. A missing
        insight yields a rejected result.
        """
        ...

    @abstractmethod
    def query_recent_insights(
        self, limit: int = 20, status: InsightStatus | None = None
    ) -> list[Insight]:
        """Most recent insights first."""
        ...

    # Metrics

    @abstractmethod
    def insert_metric(self, sample: MetricSummary) -> None:
        ...

    @abstractmethod
    def query_recent_metrics(self, metric_name: str, window_size: int) -> list[MetricSummary]:
        ...

    def close(self) -> None:  # noqa: B027
        """Release resources. No-op by default."""


def _apply_fields(insight: Insight, status: InsightStatus, fields: dict[str, Any] | None) -> None:
    insight.status = status
    for name, value in (fields or {}).items():
        if not hasattr(insight, name):
            raise ValueError(f"Unknown insight field: {name}")
        setattr(insight, name, value)


class InMemoryGateway(PersistenceGateway):
    """Gateway backed by dicts, for tests and embedding.

    A single lock serializes every operation, which gives per-key atomicity
    for update_pattern and update_insight across threads. Insights are
    copied in and out so callers never alias stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.executions: list[ExecutionRecord] = []
        self.patterns: dict[PatternKey, PatternModel] = {}
        self.insights: dict[str, Insight] = {}
        self.metrics: dict[str, list[MetricSummary]] = {}

    def insert_execution(self, record: ExecutionRecord) -> None:
        with self._lock:
            self.executions.append(record)

    def query_recent_executions(self, hook_name: str, limit: int) -> list[ExecutionRecord]:
        with self._lock:
            matching = [r for r in self.executions if r.hook_name == hook_name]
        matching.sort(key=lambda r: r.timestamp)
        return matching[-limit:] if limit > 0 else []

    def upsert_pattern(self, key: PatternKey, model: PatternModel) -> None:
        with self._lock:
            self.patterns[key] = model

    def load_pattern(self, key: PatternKey) -> PatternModel | None:
        with self._lock:
            return self.patterns.get(key)

    def update_pattern(self, key: PatternKey, fn: PatternUpdate) -> PatternModel:
        with self._lock:
            updated = fn(self.patterns.get(key))
            self.patterns[key] = updated
            return updated

    def query_patterns_by_hook(self, hook_name: str) -> list[PatternModel]:
        with self._lock:
            return [m for k, m in self.patterns.items() if k.hook_name == hook_name]

    def list_hook_names(self) -> list[str]:
        with self._lock:
            return sorted({k.hook_name for k in self.patterns})

    def insert_insight(self, insight: Insight) -> None:
        with self._lock:
            self.insights[insight.id] = copy.deepcopy(insight)

    def load_insight(self, insight_id: str) -> Insight | None:
        with self._lock:
            stored = self.insights.get(insight_id)
            return copy.deepcopy(stored) if stored else None

    def update_insight_status(
        self, insight_id: str, status: InsightStatus, fields: dict[str, Any] | None = None
    ) -> bool:
        with self._lock:
            stored = self.insights.get(insight_id)
            if stored is None:
                return False
            working = copy.deepcopy(stored)
            _apply_fields(working, status, fields)
            self.insights[insight_id] = working
            return True

    def update_insight(self, insight_id: str, fn: InsightTransition) -> OperationResult:
        with self._lock:
            stored = self.insights.get(insight_id)
            if stored is None:
                return OperationResult.rejected(f"Insight {insight_id} not found")
            working = copy.deepcopy(stored)
            result = fn(working)
            if result.success:
                self.insights[insight_id] = working
            return result

    def query_recent_insights(
        self, limit: int = 20, status: InsightStatus | None = None
    ) -> list[Insight]:
        with self._lock:
            selected = [
                copy.deepcopy(i)
                for i in self.insights.values()
                if status is None or i.status == status
            ]
        selected.sort(key=lambda i: i.created_at, reverse=True)
        return selected[:limit]

    def insert_metric(self, sample: MetricSummary) -> None:
        with self._lock:
            self.metrics.setdefault(sample.name, []).append(sample)

    def query_recent_metrics(self, metric_name: str, window_size: int) -> list[MetricSummary]:
        with self._lock:
            samples = sorted(self.metrics.get(metric_name, []), key=lambda s: s.timestamp)
        return samples[-window_size:] if window_size > 0 else []


__all__ = [
    "InMemoryGateway",
    "InsightTransition",
    "PatternUpdate",
    "PersistenceGateway",
]
