"""Per-pattern online statistics.

A PatternModel aggregates every ExecutionRecord that produced one
(hook name, pattern type, pattern key) feature. Models are immutable
snapshots: ``update()`` returns a new snapshot, so invariants are checked
once per transition and a persistence gateway can run load -> update ->
store as a single atomic read-modify-write.

Execution time uses Welford's online algorithm:

    mean' = mean + (x - mean) / n
    M2'   = M2 + (x - mean) * (x - mean')
    variance = M2' / (n - 1)   for n > 1
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple

from cadence.core.errors import DataIntegrityWarning, ValidationReport
from cadence.core.logging import get_logger
from cadence.learning import scoring

if TYPE_CHECKING:
    from cadence.learning.records import ExecutionRecord

_logger = get_logger("learning.patterns")

ADAPTATION_HISTORY_LIMIT = 100

_DAY_NAMES = frozenset({
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
})


class PatternType(str, Enum):
    """Kinds of recurring conditions tracked per hook."""

    FILE_PATH = "file_path"
    FILE_EXTENSION = "file_extension"
    CONTENT_HASH = "content_hash"
    EXECUTION_TIME_RANGE = "execution_time_range"
    HOOK_FAMILY = "hook_family"
    HOOK_PRIORITY = "hook_priority"
    HOUR_OF_DAY = "hour_of_day"
    DAY_OF_WEEK = "day_of_week"

    @property
    def data_field(self) -> str:
        """Name of the field carrying the key in pattern_data."""
        return _DATA_FIELDS[self]


_DATA_FIELDS: dict[PatternType, str] = {
    PatternType.FILE_PATH: "path",
    PatternType.FILE_EXTENSION: "extension",
    PatternType.CONTENT_HASH: "hash",
    PatternType.EXECUTION_TIME_RANGE: "range",
    PatternType.HOOK_FAMILY: "family",
    PatternType.HOOK_PRIORITY: "priority",
    PatternType.HOUR_OF_DAY: "hourOfDay",
    PatternType.DAY_OF_WEEK: "dayOfWeek",
}


class PatternKey(NamedTuple):
    """Identity of a PatternModel."""

    hook_name: str
    pattern_type: PatternType
    pattern_key: str

    @property
    def pattern_id(self) -> str:
        return f"{self.hook_name}:{self.pattern_type.value}:{self.pattern_key}"

    @classmethod
    def from_id(cls, pattern_id: str) -> PatternKey:
        """Parse ``hook:type:key``; the key itself may contain colons.

        Raises:
            ValueError: If the id is malformed or names an unknown type.
        """
        parts = pattern_id.split(":", 2)
        if len(parts) != 3:
            raise ValueError(f"Malformed pattern id: {pattern_id!r}")
        hook_name, pattern_type, pattern_key = parts
        return cls(hook_name, PatternType(pattern_type), pattern_key)


@dataclass(frozen=True)
class Adaptation:
    """One recorded adjustment made on the strength of a pattern."""

    kind: str
    old_value: Any
    new_value: Any
    reason: str
    confidence: float
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "reason": self.reason,
            "confidence": self.confidence,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Adaptation:
        return cls(
            kind=data["kind"],
            old_value=data.get("old_value"),
            new_value=data.get("new_value"),
            reason=data.get("reason", ""),
            confidence=data.get("confidence", 0.0),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass(frozen=True)
class PatternModel:
    """Immutable statistics snapshot for one pattern key."""

    hook_name: str
    pattern_type: PatternType
    pattern_key: str
    first_seen: datetime
    last_seen: datetime
    last_updated: datetime

    total_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    block_count: int = 0

    mean_execution_ms: float = 0.0
    """Running mean of execution time."""

    m2_execution: float = 0.0
    """Welford sum of squared deviations from the running mean."""

    false_positive_count: int = 0
    false_negative_count: int = 0

    confidence: float = 0.0
    """Trust in these statistics (0.0-1.0), recomputed on every transition."""

    adaptation_history: tuple[Adaptation, ...] = ()
    related_patterns: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def new(cls, key: PatternKey, seen_at: datetime | None = None) -> PatternModel:
        """Create an empty model for a key observed for the first time."""
        seen_at = seen_at or datetime.now(UTC)
        return cls(
            hook_name=key.hook_name,
            pattern_type=key.pattern_type,
            pattern_key=key.pattern_key,
            first_seen=seen_at,
            last_seen=seen_at,
            last_updated=seen_at,
        )

    # ------------------------------------------------------------------
    # Derived statistics
    # ------------------------------------------------------------------

    @property
    def key(self) -> PatternKey:
        return PatternKey(self.hook_name, self.pattern_type, self.pattern_key)

    @property
    def pattern_id(self) -> str:
        return self.key.pattern_id

    @property
    def success_rate(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.success_count / self.total_count

    @property
    def variance_execution_ms(self) -> float:
        """Sample variance of execution time (0 until two observations)."""
        if self.total_count < 2:
            return 0.0
        return self.m2_execution / (self.total_count - 1)

    @property
    def std_dev_execution_ms(self) -> float:
        return math.sqrt(self.variance_execution_ms)

    @property
    def error_rate(self) -> float:
        """False positives and negatives per observation."""
        return (self.false_positive_count + self.false_negative_count) / max(
            self.total_count, 1
        )

    @property
    def pattern_data(self) -> dict[str, Any]:
        """Type-specific payload, e.g. ``{"extension": ".py"}``."""
        value: Any = self.pattern_key
        if self.pattern_type == PatternType.HOUR_OF_DAY and self.pattern_key.isdigit():
            value = int(self.pattern_key)
        return {self.pattern_type.data_field: value}

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def update(self, record: ExecutionRecord, now: datetime | None = None) -> PatternModel:
        """Fold one execution into the statistics, returning a new snapshot."""
        now = now or datetime.now(UTC)
        n = self.total_count + 1
        x = float(record.duration_ms)
        mean = self.mean_execution_ms + (x - self.mean_execution_ms) / n
        m2 = self.m2_execution + (x - self.mean_execution_ms) * (x - mean)

        updated = replace(
            self,
            total_count=n,
            success_count=self.success_count + (1 if record.success else 0),
            failure_count=self.failure_count + (0 if record.success else 1),
            block_count=self.block_count + (1 if record.blocked else 0),
            mean_execution_ms=mean,
            m2_execution=m2,
            first_seen=min(self.first_seen, record.timestamp),
            last_seen=max(self.last_seen, record.timestamp),
            last_updated=now,
        )
        updated = updated.with_confidence(now)

        for warning in updated.check_integrity():
            _logger.warning(
                "pattern_integrity_warning",
                pattern_id=updated.pattern_id,
                detail=warning,
            )
            warnings.warn(
                f"{updated.pattern_id}: {warning}", DataIntegrityWarning, stacklevel=2
            )
        return updated

    def with_confidence(self, now: datetime | None = None) -> PatternModel:
        """Recompute confidence against a reference time."""
        now = now or datetime.now(UTC)
        return replace(self, confidence=scoring.pattern_confidence(self, now))

    def record_false_positive(self, now: datetime | None = None) -> PatternModel:
        """Count a block the pattern predicted that should not have happened."""
        now = now or datetime.now(UTC)
        return replace(
            self, false_positive_count=self.false_positive_count + 1, last_updated=now
        ).with_confidence(now)

    def record_false_negative(self, now: datetime | None = None) -> PatternModel:
        """Count a block the pattern missed."""
        now = now or datetime.now(UTC)
        return replace(
            self, false_negative_count=self.false_negative_count + 1, last_updated=now
        ).with_confidence(now)

    def with_adaptation(
        self,
        kind: str,
        old_value: Any,
        new_value: Any,
        reason: str,
        confidence: float,
        at: datetime | None = None,
        limit: int = ADAPTATION_HISTORY_LIMIT,
    ) -> PatternModel:
        """Append to the adaptation history, keeping the newest ``limit`` entries."""
        at = at or datetime.now(UTC)
        entry = Adaptation(kind, old_value, new_value, reason, confidence, at)
        history = (*self.adaptation_history, entry)[-limit:]
        return replace(self, adaptation_history=history, last_updated=at)

    def with_related(self, pattern_id: str) -> PatternModel:
        if pattern_id in self.related_patterns or pattern_id == self.pattern_id:
            return self
        return replace(self, related_patterns=(*self.related_patterns, pattern_id))

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def effectiveness(self, now: datetime | None = None) -> float:
        return scoring.pattern_effectiveness(self, now or datetime.now(UTC))

    def is_stale(self, now: datetime | None = None) -> bool:
        """Advisory: eligible for pruning by a caller-owned cleanup policy."""
        return scoring.pattern_is_stale(self, now or datetime.now(UTC))

    def similarity(self, other: PatternModel) -> float:
        return scoring.pattern_similarity(self, other)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def check_integrity(self) -> list[str]:
        """Non-fatal inconsistencies in the counters."""
        problems: list[str] = []
        if self.total_count != self.success_count + self.failure_count:
            problems.append(
                "total_count does not match sum of success_count and failure_count"
            )
        if self.block_count > self.total_count:
            problems.append("block_count exceeds total_count")
        return problems

    def validate(self) -> ValidationReport:
        """Check required fields, ranges and the type-specific payload."""
        report = ValidationReport()
        if not self.hook_name:
            report.errors.append("hook_name is required")
        if not isinstance(self.pattern_type, PatternType):
            report.errors.append("pattern_type must be a PatternType")
            return report
        report.extend(self._validate_pattern_data())

        for name in ("total_count", "success_count", "failure_count", "block_count",
                     "false_positive_count", "false_negative_count"):
            if getattr(self, name) < 0:
                report.errors.append(f"{name} cannot be negative")
        if not 0.0 <= self.confidence <= 1.0:
            report.errors.append("confidence must be between 0 and 1")
        if not 0.0 <= self.success_rate <= 1.0:
            report.errors.append("success rate must be between 0 and 1")
        if self.mean_execution_ms < 0:
            report.errors.append("mean_execution_ms cannot be negative")
        report.warnings.extend(self.check_integrity())
        return report

    def _validate_pattern_data(self) -> ValidationReport:
        report = ValidationReport()
        field_name = self.pattern_type.data_field
        if not self.pattern_key:
            report.errors.append(
                f"{self.pattern_type.value} pattern requires {field_name} field"
            )
            return report

        if self.pattern_type == PatternType.HOUR_OF_DAY:
            if not self.pattern_key.isdigit() or not 0 <= int(self.pattern_key) <= 23:
                report.errors.append("hour_of_day pattern requires an hour between 0 and 23")
        elif self.pattern_type == PatternType.DAY_OF_WEEK:
            if self.pattern_key not in _DAY_NAMES:
                report.errors.append("day_of_week pattern requires a weekday name")
        elif self.pattern_type == PatternType.EXECUTION_TIME_RANGE:
            # Local import: records imports PatternType from this module
            from cadence.learning.records import EXECUTION_TIME_BUCKETS, SLOWEST_BUCKET

            buckets = {name for _, name in EXECUTION_TIME_BUCKETS} | {SLOWEST_BUCKET}
            if self.pattern_key not in buckets:
                report.errors.append(
                    f"execution_time_range pattern has unknown range '{self.pattern_key}'"
                )
        elif self.pattern_type == PatternType.FILE_EXTENSION and not self.pattern_key.startswith("."):
            report.warnings.append("file_extension pattern should start with '.'")
        return report

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def summary(self, now: datetime | None = None) -> dict[str, Any]:
        """Read-only report view consumed by reporting tools."""
        now = now or datetime.now(UTC)
        return {
            "pattern_id": self.pattern_id,
            "hook_name": self.hook_name,
            "type": self.pattern_type.value,
            "data": self.pattern_data,
            "success_rate": round(self.success_rate, 4),
            "confidence": round(self.confidence, 4),
            "effectiveness": round(self.effectiveness(now), 4),
            "total_executions": self.total_count,
            "blocked": self.block_count,
            "mean_execution_ms": round(self.mean_execution_ms, 2),
            "std_dev_execution_ms": round(self.std_dev_execution_ms, 2),
            "is_stale": self.is_stale(now),
            "last_seen": self.last_seen.isoformat(),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "hook_name": self.hook_name,
            "pattern_type": self.pattern_type.value,
            "pattern_key": self.pattern_key,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "last_updated": self.last_updated.isoformat(),
            "total_count": self.total_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "block_count": self.block_count,
            "mean_execution_ms": self.mean_execution_ms,
            "m2_execution": self.m2_execution,
            "false_positive_count": self.false_positive_count,
            "false_negative_count": self.false_negative_count,
            "confidence": self.confidence,
            "adaptation_history": [a.to_dict() for a in self.adaptation_history],
            "related_patterns": list(self.related_patterns),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternModel:
        return cls(
            hook_name=data["hook_name"],
            pattern_type=PatternType(data["pattern_type"]),
            pattern_key=data["pattern_key"],
            first_seen=datetime.fromisoformat(data["first_seen"]),
            last_seen=datetime.fromisoformat(data["last_seen"]),
            last_updated=datetime.fromisoformat(data["last_updated"]),
            total_count=data.get("total_count", 0),
            success_count=data.get("success_count", 0),
            failure_count=data.get("failure_count", 0),
            block_count=data.get("block_count", 0),
            mean_execution_ms=data.get("mean_execution_ms", 0.0),
            m2_execution=data.get("m2_execution", 0.0),
            false_positive_count=data.get("false_positive_count", 0),
            false_negative_count=data.get("false_negative_count", 0),
            confidence=data.get("confidence", 0.0),
            adaptation_history=tuple(
                Adaptation.from_dict(a) for a in data.get("adaptation_history", [])
            ),
            related_patterns=tuple(data.get("related_patterns", [])),
            metadata=dict(data.get("metadata") or {}),
        )


__all__ = [
    "ADAPTATION_HISTORY_LIMIT",
    "Adaptation",
    "PatternKey",
    "PatternModel",
    "PatternType",
]
