"""Execution records: one observed hook run.

An ExecutionRecord is created once when telemetry arrives from the hook
runner and never mutated afterwards. It is the source of every derived
feature: each record yields a flat list of (pattern type, pattern key)
features that select or create PatternModels, and it is compared against a
window of recent records of the same hook to flag outliers.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import PurePosixPath
from typing import Any, NamedTuple

from cadence.core.errors import ValidationReport
from cadence.learning.patterns import PatternType
from cadence.utils.time import ensure_utc

# Upper bounds (exclusive, ms) for the execution-time buckets
EXECUTION_TIME_BUCKETS: tuple[tuple[float, str], ...] = (
    (100, "very_fast"),
    (500, "fast"),
    (1000, "normal"),
    (3000, "slow"),
    (10000, "very_slow"),
)
SLOWEST_BUCKET = "extremely_slow"

OUTLIER_MIN_WINDOW = 5
OUTLIER_Z_THRESHOLD = 2.5
OUTLIER_SUCCESS_RATE = 0.9
LONG_EXECUTION_WARNING_MS = 30000

_DAY_NAMES = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)


def execution_time_bucket(duration_ms: float) -> str:
    """Classify a duration into one of six named buckets."""
    for upper, name in EXECUTION_TIME_BUCKETS:
        if duration_ms < upper:
            return name
    return SLOWEST_BUCKET


class PatternFeature(NamedTuple):
    """A candidate pattern key derived from one record."""

    pattern_type: PatternType
    pattern_key: str


@dataclass(frozen=True)
class OutlierResult:
    """Outcome of comparing a record against a recent window."""

    is_outlier: bool
    reason: str | None = None
    """"insufficient_data", "execution_time" or "success_pattern"."""

    z_score: float | None = None
    window_mean_ms: float | None = None
    recent_success_rate: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_outlier": self.is_outlier,
            "reason": self.reason,
            "z_score": self.z_score,
            "window_mean_ms": self.window_mean_ms,
            "recent_success_rate": self.recent_success_rate,
        }


@dataclass(frozen=True)
class ExecutionRecord:
    """One hook invocation as reported by the hook runner.

    ``success`` and ``blocked`` are independent: a hook may succeed and
    still block the operation it guarded.
    """

    hook_name: str
    duration_ms: float
    success: bool = True
    blocked: bool = False
    hook_family: str = "unknown"
    hook_priority: str = "medium"
    file_path: str | None = None
    file_extension: str | None = None
    content_hash: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    exit_code: int | None = None
    error_message: str | None = None
    parallel: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    @property
    def extension(self) -> str | None:
        """File extension, falling back to the suffix of file_path."""
        if self.file_extension:
            return self.file_extension
        if self.file_path:
            suffix = PurePosixPath(self.file_path).suffix
            return suffix or None
        return None

    @property
    def time_bucket(self) -> str:
        return execution_time_bucket(self.duration_ms)

    def validate(self) -> ValidationReport:
        """Check structural invariants without raising."""
        report = ValidationReport()
        if not self.hook_name:
            report.errors.append("hook_name is required")
        if not isinstance(self.duration_ms, (int, float)) or isinstance(
            self.duration_ms, bool
        ):
            report.errors.append("duration_ms must be a number")
        elif not math.isfinite(self.duration_ms) or self.duration_ms < 0:
            report.errors.append("duration_ms must be a non-negative number")
        elif self.duration_ms > LONG_EXECUTION_WARNING_MS:
            report.warnings.append(
                "duration_ms is unusually high (>30s), consider timeout optimization"
            )
        if not isinstance(self.success, bool):
            report.errors.append("success must be a boolean")
        if not isinstance(self.blocked, bool):
            report.errors.append("blocked must be a boolean")
        if not self.hook_family or self.hook_family == "unknown":
            report.warnings.append("hook_family should be specified for better categorization")
        return report

    def extract_features(self) -> list[PatternFeature]:
        """Derive the pattern keys this record contributes to."""
        features: list[PatternFeature] = []
        if self.file_path:
            features.append(PatternFeature(PatternType.FILE_PATH, self.file_path))
        extension = self.extension
        if extension:
            features.append(PatternFeature(PatternType.FILE_EXTENSION, extension))
        if self.content_hash:
            features.append(PatternFeature(PatternType.CONTENT_HASH, self.content_hash))
        features.append(PatternFeature(PatternType.EXECUTION_TIME_RANGE, self.time_bucket))
        features.append(PatternFeature(PatternType.HOOK_FAMILY, self.hook_family))
        features.append(PatternFeature(PatternType.HOOK_PRIORITY, str(self.hook_priority)))
        features.append(PatternFeature(PatternType.HOUR_OF_DAY, str(self.timestamp.hour)))
        features.append(
            PatternFeature(PatternType.DAY_OF_WEEK, _DAY_NAMES[self.timestamp.weekday()])
        )
        return features

    def is_outlier(self, recent_window: Sequence[ExecutionRecord]) -> OutlierResult:
        """Compare this record against recent executions of the same hook.

        Flags a z-score above 2.5 on duration (population standard
        deviation of the window), or a failure while the window's success
        rate exceeds 90%.
        """
        if len(recent_window) < OUTLIER_MIN_WINDOW:
            return OutlierResult(is_outlier=False, reason="insufficient_data")

        durations = [r.duration_ms for r in recent_window]
        mean = sum(durations) / len(durations)
        variance = sum((d - mean) ** 2 for d in durations) / len(durations)
        std_dev = math.sqrt(variance)
        if std_dev > 0:
            z_score = abs(self.duration_ms - mean) / std_dev
        else:
            z_score = 0.0 if self.duration_ms == mean else math.inf

        if z_score > OUTLIER_Z_THRESHOLD:
            return OutlierResult(
                is_outlier=True,
                reason="execution_time",
                z_score=z_score,
                window_mean_ms=mean,
            )

        success_rate = sum(1 for r in recent_window if r.success) / len(recent_window)
        if not self.success and success_rate > OUTLIER_SUCCESS_RATE:
            return OutlierResult(
                is_outlier=True,
                reason="success_pattern",
                z_score=z_score,
                window_mean_ms=mean,
                recent_success_rate=success_rate,
            )

        return OutlierResult(
            is_outlier=False,
            z_score=z_score,
            window_mean_ms=mean,
            recent_success_rate=success_rate,
        )

    def complexity(self) -> float:
        """Rough 0-1 complexity score from duration, code metrics and outcome."""
        score = min(self.duration_ms / 10000, 0.3)
        code = self.context.get("code_complexity") or {}
        if code.get("line_count"):
            score += min(code["line_count"] / 1000, 0.2)
        if code.get("function_count"):
            score += min(code["function_count"] / 50, 0.2)
        if code.get("class_count"):
            score += min(code["class_count"] / 10, 0.1)
        if not self.success or self.blocked:
            score += 0.2
        return min(score, 1.0)

    def summary(self) -> dict[str, Any]:
        if not self.success:
            result = "failed"
        elif self.blocked:
            result = "blocked"
        else:
            result = "success"
        return {
            "hook_name": self.hook_name,
            "family": self.hook_family,
            "priority": self.hook_priority,
            "duration_ms": self.duration_ms,
            "result": result,
            "file": PurePosixPath(self.file_path).name if self.file_path else None,
            "complexity": round(self.complexity(), 3),
            "timestamp": self.timestamp.isoformat(),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "hook_name": self.hook_name,
            "hook_family": self.hook_family,
            "hook_priority": self.hook_priority,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "blocked": self.blocked,
            "file_path": self.file_path,
            "file_extension": self.file_extension,
            "content_hash": self.content_hash,
            "context": dict(self.context),
            "timestamp": self.timestamp.isoformat(),
            "exit_code": self.exit_code,
            "error_message": self.error_message,
            "parallel": self.parallel,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionRecord:
        """Build a record from runner telemetry or a to_dict() payload.

        Missing optional fields take their defaults; ``timestamp`` may be an
        ISO-8601 string or a datetime (naive values are taken as UTC). A
        ``duration`` or ``execution_time`` key is accepted in place of
        ``duration_ms``.
        """
        raw_ts = data.get("timestamp")
        if isinstance(raw_ts, str):
            timestamp = datetime.fromisoformat(raw_ts)
        elif isinstance(raw_ts, datetime):
            timestamp = raw_ts
        else:
            timestamp = datetime.now(UTC)

        duration = data.get("duration_ms", data.get("duration", data.get("execution_time", 0)))
        kwargs: dict[str, Any] = {
            "hook_name": data.get("hook_name", ""),
            "duration_ms": duration,
            "success": data.get("success", True),
            "blocked": data.get("blocked", False),
            "hook_family": data.get("hook_family") or "unknown",
            "hook_priority": data.get("hook_priority") or "medium",
            "file_path": data.get("file_path"),
            "file_extension": data.get("file_extension"),
            "content_hash": data.get("content_hash"),
            "context": dict(data.get("context") or {}),
            "timestamp": timestamp,
            "exit_code": data.get("exit_code"),
            "error_message": data.get("error_message"),
            "parallel": bool(data.get("parallel", False)),
        }
        if data.get("id"):
            kwargs["id"] = data["id"]
        return cls(**kwargs)


__all__ = [
    "EXECUTION_TIME_BUCKETS",
    "ExecutionRecord",
    "OutlierResult",
    "PatternFeature",
    "execution_time_bucket",
]
