"""System-wide metric summaries, aggregation and anomaly detection.

A MetricSummary is an ephemeral value computed from a window of raw samples
or merged from earlier summaries. Three kinds exist:

- gauge: a point-in-time value; merging re-summarizes the constituent values
  (an approximation when those values are themselves means).
- counter: a non-negative count; merging sums.
- histogram: distribution statistics with percentiles; merging combines
  count and sum exactly and averages each percentile weighted by count.
  Merged percentiles are an approximation, not a recomputation.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from cadence.core.errors import ValidationReport
from cadence.core.logging import get_logger
from cadence.utils.time import ensure_utc

_logger = get_logger("learning.metrics")

PERCENTILES: tuple[int, ...] = (50, 75, 90, 95, 99)

ANOMALY_MIN_HISTORY = 10
ANOMALY_Z_THRESHOLD = 3.0
ERROR_RATE_THRESHOLD = 0.1
EXECUTION_TIME_P95_FACTOR = 2.0


class MetricKind(str, Enum):
    GAUGE = "gauge"
    COUNTER = "counter"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class HistogramStats:
    """Descriptive statistics over a sample set.

    Every field except ``count`` and ``sum`` is None for an empty input.
    """

    count: int = 0
    sum: float = 0.0
    min: float | None = None
    max: float | None = None
    mean: float | None = None
    std_dev: float | None = None
    """Population standard deviation (divides by n)."""

    p50: float | None = None
    p75: float | None = None
    p90: float | None = None
    p95: float | None = None
    p99: float | None = None


def _percentile(sorted_values: Sequence[float], rank: float) -> float:
    """Linear interpolation between the two closest ranks."""
    index = (len(sorted_values) - 1) * (rank / 100)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return sorted_values[lower]
    weight = index - lower
    return sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight


def summarize(values: Sequence[float]) -> HistogramStats:
    """Compute count/sum/mean/stddev and fixed percentiles.

    Returns an empty HistogramStats (None statistics) for no values.
    """
    if not values:
        return HistogramStats()

    ordered = sorted(values)
    count = len(ordered)
    total = math.fsum(ordered)
    mean = total / count
    variance = math.fsum((v - mean) ** 2 for v in ordered) / count
    percentiles = {f"p{rank}": _percentile(ordered, rank) for rank in PERCENTILES}
    return HistogramStats(
        count=count,
        sum=total,
        min=ordered[0],
        max=ordered[-1],
        mean=mean,
        std_dev=math.sqrt(variance),
        **percentiles,
    )


@dataclass(frozen=True)
class AnomalyResult:
    """Outcome of comparing one sample against its history."""

    is_anomaly: bool
    reason: str | None = None
    """"insufficient_data", "statistical_outlier", "threshold_exceeded"
    or "performance_degradation"."""

    current_value: float | None = None
    z_score: float | None = None
    historical_mean: float | None = None
    historical_std_dev: float | None = None
    historical_p95: float | None = None
    threshold: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass(frozen=True)
class MetricSummary:
    """A gauge, counter or histogram observation with optional statistics."""

    name: str
    value: float | None
    kind: MetricKind = MetricKind.GAUGE
    unit: str | None = None
    """"ms", "percentage", "bytes", "count" or any free-form unit."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    source: str = "system"
    aggregation_period: str | None = None
    tags: tuple[str, ...] = ()
    dimensions: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)

    min: float | None = None
    max: float | None = None
    avg: float | None = None
    std_dev: float | None = None
    count: int | None = None
    sum: float | None = None
    p50: float | None = None
    p75: float | None = None
    p90: float | None = None
    p95: float | None = None
    p99: float | None = None

    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    def validate(self) -> ValidationReport:
        report = ValidationReport()
        if not self.name:
            report.errors.append("name is required")
        if self.value is not None and (
            not isinstance(self.value, (int, float)) or isinstance(self.value, bool)
        ):
            report.errors.append("value must be a number or None")
            return report
        if not isinstance(self.kind, MetricKind):
            report.errors.append("kind must be one of: gauge, counter, histogram")
        elif self.kind == MetricKind.COUNTER and self.value is not None and self.value < 0:
            report.errors.append("counter metrics cannot have negative values")
        elif self.kind == MetricKind.HISTOGRAM and (not self.count or self.sum is None):
            report.warnings.append("histogram metrics should include count and sum")

        if self.min is not None and self.max is not None and self.min > self.max:
            report.errors.append("min value cannot be greater than max value")
        if self.avg is not None and self.min is not None and self.avg < self.min:
            report.errors.append("average cannot be less than minimum")
        if self.avg is not None and self.max is not None and self.avg > self.max:
            report.errors.append("average cannot be greater than maximum")
        return report

    def detect_anomaly(self, history: Sequence[MetricSummary]) -> AnomalyResult:
        return detect_anomaly(self, history)

    def format_value(self) -> str:
        """Render the value with its unit for display."""
        if self.value is None:
            return "N/A"
        value = self.value
        if self.unit == "ms":
            if value > 1000:
                return f"{value / 1000:.2f}s"
            return f"{round(value)}ms"
        if self.unit == "percentage":
            return f"{value * 100:.1f}%"
        if self.unit == "bytes":
            for size, suffix in ((1024**3, "GB"), (1024**2, "MB"), (1024, "KB")):
                if value > size:
                    return f"{value / size:.2f}{suffix}"
            return f"{round(value)}B"
        if self.unit:
            return f"{value} {self.unit}"
        return str(value)

    def summary(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "value": self.format_value(),
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.kind == MetricKind.HISTOGRAM:
            result["statistics"] = {
                "min": self.min,
                "max": self.max,
                "avg": self.avg,
                "p50": self.p50,
                "p95": self.p95,
                "p99": self.p99,
            }
        if self.tags:
            result["tags"] = list(self.tags)
        if self.dimensions:
            result["dimensions"] = dict(self.dimensions)
        return result

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "value": self.value,
            "kind": self.kind.value,
            "unit": self.unit,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "aggregation_period": self.aggregation_period,
            "tags": list(self.tags),
            "dimensions": dict(self.dimensions),
            "context": dict(self.context),
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
            "std_dev": self.std_dev,
            "count": self.count,
            "sum": self.sum,
            **{f"p{rank}": getattr(self, f"p{rank}") for rank in PERCENTILES},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MetricSummary:
        kwargs = {
            key: data.get(key)
            for key in ("value", "unit", "aggregation_period", "min", "max", "avg",
                        "std_dev", "count", "sum", "p50", "p75", "p90", "p95", "p99")
        }
        if data.get("id"):
            kwargs["id"] = data["id"]
        raw_ts = data.get("timestamp")
        if raw_ts:
            kwargs["timestamp"] = (
                datetime.fromisoformat(raw_ts) if isinstance(raw_ts, str) else raw_ts
            )
        return cls(
            name=data["name"],
            kind=MetricKind(data.get("kind", "gauge")),
            source=data.get("source") or "system",
            tags=tuple(data.get("tags") or ()),
            dimensions=dict(data.get("dimensions") or {}),
            context=dict(data.get("context") or {}),
            **kwargs,
        )


def create_gauge(name: str, value: float, **options: Any) -> MetricSummary:
    return MetricSummary(name=name, value=value, kind=MetricKind.GAUGE, **options)


def create_counter(name: str, value: float, **options: Any) -> MetricSummary:
    """Create a counter.

    Raises:
        ValueError: If value is negative.
    """
    if value < 0:
        raise ValueError("Counter values must be non-negative")
    return MetricSummary(name=name, value=value, kind=MetricKind.COUNTER, **options)


def create_histogram(name: str, values: Sequence[float], **options: Any) -> MetricSummary:
    """Create a histogram summarizing ``values``.

    Raises:
        ValueError: If values is empty.
    """
    if not values:
        raise ValueError("Histogram requires a non-empty sequence of values")
    stats = summarize(values)
    return MetricSummary(
        name=name,
        value=stats.mean,
        kind=MetricKind.HISTOGRAM,
        min=stats.min,
        max=stats.max,
        avg=stats.mean,
        std_dev=stats.std_dev,
        count=stats.count,
        sum=stats.sum,
        p50=stats.p50,
        p75=stats.p75,
        p90=stats.p90,
        p95=stats.p95,
        p99=stats.p99,
        **options,
    )


def merge(
    summaries: Sequence[MetricSummary], aggregation_period: str | None = None
) -> MetricSummary:
    """Combine summaries of one metric into a single summary.

    Raises:
        ValueError: If summaries is empty or mixes names or kinds.
    """
    if not summaries:
        raise ValueError("Cannot aggregate an empty sequence of metrics")
    first = summaries[0]
    if any(s.name != first.name or s.kind != first.kind for s in summaries):
        raise ValueError("All metrics must have the same name and kind for aggregation")

    context = {
        "aggregated_from": len(summaries),
        "start_time": first.timestamp.isoformat(),
        "end_time": summaries[-1].timestamp.isoformat(),
    }
    common: dict[str, Any] = {
        "name": first.name,
        "kind": first.kind,
        "unit": first.unit,
        "source": "aggregation",
        "aggregation_period": aggregation_period,
        "context": context,
    }

    if first.kind == MetricKind.GAUGE:
        stats = summarize([s.value for s in summaries if s.value is not None])
        return MetricSummary(
            value=stats.mean,
            min=stats.min,
            max=stats.max,
            avg=stats.mean,
            std_dev=stats.std_dev,
            count=len(summaries),
            **common,
        )

    if first.kind == MetricKind.COUNTER:
        total = math.fsum(s.value or 0 for s in summaries)
        return MetricSummary(value=total, count=len(summaries), sum=total, **common)

    total_count = sum(s.count or 0 for s in summaries)
    total_sum = math.fsum(s.sum or 0 for s in summaries)
    overall_mean = total_sum / total_count if total_count else 0.0
    mins = [s.min for s in summaries if s.min is not None]
    maxes = [s.max for s in summaries if s.max is not None]

    def weighted(attr: str) -> float | None:
        weighted_sum = 0.0
        weight = 0
        for s in summaries:
            value = getattr(s, attr)
            if value is not None and s.count:
                weighted_sum += value * s.count
                weight += s.count
        return weighted_sum / weight if weight else None

    return MetricSummary(
        value=overall_mean,
        min=min(mins) if mins else None,
        max=max(maxes) if maxes else None,
        avg=overall_mean,
        count=total_count,
        sum=total_sum,
        **{f"p{rank}": weighted(f"p{rank}") for rank in PERCENTILES},
        **common,
    )


def detect_anomaly(sample: MetricSummary, history: Sequence[MetricSummary]) -> AnomalyResult:
    """Compare a sample against its history.

    Requires at least ten historical samples. A z-score above 3 is a
    statistical outlier. Independently of the z-score, ``error_rate``
    metrics above 0.1 exceed their threshold and ``execution_time`` metrics
    above twice the historical p95 are a performance degradation. A zero
    standard deviation makes any differing value an outlier.
    """
    if len(history) < ANOMALY_MIN_HISTORY:
        return AnomalyResult(is_anomaly=False, reason="insufficient_data")

    current = sample.value if sample.value is not None else 0.0
    stats = summarize([h.value for h in history if h.value is not None])
    if stats.mean is None:
        return AnomalyResult(is_anomaly=False, reason="insufficient_data")

    std_dev = stats.std_dev or 0.0
    if std_dev > 0:
        z_score = abs(current - stats.mean) / std_dev
    else:
        z_score = 0.0 if current == stats.mean else math.inf

    if z_score > ANOMALY_Z_THRESHOLD:
        result = AnomalyResult(
            is_anomaly=True,
            reason="statistical_outlier",
            current_value=current,
            z_score=z_score,
            historical_mean=stats.mean,
            historical_std_dev=std_dev,
        )
    elif "error_rate" in sample.name and current > ERROR_RATE_THRESHOLD:
        result = AnomalyResult(
            is_anomaly=True,
            reason="threshold_exceeded",
            current_value=current,
            threshold=ERROR_RATE_THRESHOLD,
        )
    elif (
        "execution_time" in sample.name
        and stats.p95 is not None
        and current > stats.p95 * EXECUTION_TIME_P95_FACTOR
    ):
        result = AnomalyResult(
            is_anomaly=True,
            reason="performance_degradation",
            current_value=current,
            historical_p95=stats.p95,
        )
    else:
        return AnomalyResult(is_anomaly=False, current_value=current, z_score=z_score)

    _logger.info(
        "metric_anomaly_detected",
        metric=sample.name,
        reason=result.reason,
        value=current,
    )
    return result


__all__ = [
    "AnomalyResult",
    "HistogramStats",
    "MetricKind",
    "MetricSummary",
    "PERCENTILES",
    "create_counter",
    "create_gauge",
    "create_histogram",
    "detect_anomaly",
    "merge",
    "summarize",
]
