"""Tests for cadence.learning.metrics.

Covers:
- summarize: moments and interpolated percentiles
- Factories and validation
- merge for gauges, counters and histograms
- Anomaly detection rules
- Display formatting and dict round trip
"""

from __future__ import annotations

import math
from datetime import timedelta

import pytest

from cadence.learning.metrics import (
    MetricKind,
    MetricSummary,
    create_counter,
    create_gauge,
    create_histogram,
    detect_anomaly,
    merge,
    summarize,
)


def _gauges(name, values, start):
    return [
        create_gauge(name, v, timestamp=start + timedelta(seconds=i))
        for i, v in enumerate(values)
    ]


# ---------------------------------------------------------------------------
# summarize
# ---------------------------------------------------------------------------


class TestSummarize:
    def test_empty_input(self):
        stats = summarize([])
        assert stats.count == 0
        assert stats.mean is None
        assert stats.p99 is None

    def test_moments_and_percentiles(self):
        stats = summarize([5.0, 1.0, 3.0, 2.0, 4.0])
        assert stats.count == 5
        assert stats.sum == 15.0
        assert stats.min == 1.0
        assert stats.max == 5.0
        assert stats.mean == 3.0
        assert stats.std_dev == pytest.approx(math.sqrt(2))
        assert stats.p50 == 3.0
        assert stats.p75 == 4.0
        assert stats.p99 == pytest.approx(4.96)

    def test_single_value(self):
        stats = summarize([7.0])
        assert stats.std_dev == 0.0
        assert stats.p50 == stats.p99 == 7.0


# ---------------------------------------------------------------------------
# Factories and validation
# ---------------------------------------------------------------------------


class TestFactories:
    def test_counter_rejects_negative(self):
        with pytest.raises(ValueError, match="non-negative"):
            create_counter("hooks.blocked", -1)

    def test_histogram_requires_values(self):
        with pytest.raises(ValueError, match="non-empty"):
            create_histogram("execution_time.lint", [])

    def test_histogram_statistics(self):
        h = create_histogram("execution_time.lint", [100.0, 200.0, 300.0], unit="ms")
        assert h.kind == MetricKind.HISTOGRAM
        assert h.count == 3
        assert h.sum == 600.0
        assert h.value == h.avg == 200.0
        assert h.validate().is_valid

    def test_validate_negative_counter(self):
        sample = MetricSummary(name="hooks.blocked", value=-3, kind=MetricKind.COUNTER)
        assert "counter metrics cannot have negative values" in sample.validate().errors

    def test_validate_min_max(self):
        sample = create_gauge("cpu", 5.0, min=10.0, max=1.0)
        assert "min value cannot be greater than max value" in sample.validate().errors

    def test_histogram_without_count_warns(self):
        sample = MetricSummary(name="latency", value=1.0, kind=MetricKind.HISTOGRAM)
        report = sample.validate()
        assert report.is_valid
        assert "histogram metrics should include count and sum" in report.warnings


# ---------------------------------------------------------------------------
# merge
# ---------------------------------------------------------------------------


class TestMerge:
    def test_histogram_merge_preserves_count_and_sum(self):
        a = create_histogram("execution_time.lint", [1.0, 2.0, 3.0])
        b = create_histogram("execution_time.lint", [10.0, 20.0])
        merged = merge([a, b], aggregation_period="1h")
        assert merged.count == 5
        assert merged.sum == 36.0
        assert merged.value == pytest.approx(7.2)
        assert merged.min == 1.0
        assert merged.max == 20.0
        # count-weighted: (2 * 3 + 15 * 2) / 5
        assert merged.p50 == pytest.approx(7.2)
        assert merged.aggregation_period == "1h"
        assert merged.source == "aggregation"
        assert merged.context["aggregated_from"] == 2

    def test_counter_merge_sums(self):
        merged = merge([create_counter("blocked", 3), create_counter("blocked", 4)])
        assert merged.value == 7
        assert merged.count == 2

    def test_gauge_merge_resummarizes(self, now):
        merged = merge(_gauges("cpu", [10.0, 20.0, 30.0], now))
        assert merged.value == 20.0
        assert merged.min == 10.0
        assert merged.max == 30.0
        assert merged.count == 3

    def test_empty_merge(self):
        with pytest.raises(ValueError, match="empty"):
            merge([])

    def test_mixed_names_or_kinds(self):
        with pytest.raises(ValueError, match="same name and kind"):
            merge([create_gauge("a", 1.0), create_gauge("b", 1.0)])
        with pytest.raises(ValueError, match="same name and kind"):
            merge([create_gauge("a", 1.0), create_counter("a", 1.0)])


# ---------------------------------------------------------------------------
# Anomaly detection
# ---------------------------------------------------------------------------


class TestAnomalies:
    def test_insufficient_history(self, now):
        history = _gauges("cpu", [1.0] * 9, now)
        result = detect_anomaly(create_gauge("cpu", 100.0), history)
        assert not result.is_anomaly
        assert result.reason == "insufficient_data"

    def test_hundredfold_value_is_statistical_outlier(self, now):
        values = [100.0, 102.0, 98.0, 101.0, 99.0, 100.0, 103.0, 97.0, 100.0, 100.0]
        history = _gauges("execution_time.lint", values, now)
        result = detect_anomaly(create_gauge("execution_time.lint", 100.0 * 100), history)
        assert result.is_anomaly
        assert result.reason == "statistical_outlier"
        assert result.historical_mean == pytest.approx(100.0)

    def test_typical_value_is_not_anomalous(self, now):
        values = [100.0, 102.0, 98.0, 101.0, 99.0, 100.0, 103.0, 97.0, 100.0, 100.0]
        history = _gauges("execution_time.lint", values, now)
        result = create_gauge("execution_time.lint", 101.0).detect_anomaly(history)
        assert not result.is_anomaly
        assert result.reason is None

    def test_zero_spread_history(self, now):
        history = _gauges("cpu", [5.0] * 10, now)
        assert not detect_anomaly(create_gauge("cpu", 5.0), history).is_anomaly
        result = detect_anomaly(create_gauge("cpu", 6.0), history)
        assert result.is_anomaly
        assert result.z_score == math.inf

    def test_error_rate_threshold(self, now):
        values = [0.05, 0.15, 0.1, 0.2, 0.0, 0.1, 0.05, 0.15, 0.1, 0.1]
        history = _gauges("error_rate.lint", values, now)
        result = detect_anomaly(create_gauge("error_rate.lint", 0.2), history)
        assert result.is_anomaly
        assert result.reason == "threshold_exceeded"
        assert result.threshold == 0.1

    def test_execution_time_above_twice_p95(self, now):
        history = _gauges("execution_time.lint", [10.0] * 96 + [10000.0] * 4, now)
        result = detect_anomaly(create_gauge("execution_time.lint", 21.0), history)
        assert result.is_anomaly
        assert result.reason == "performance_degradation"
        assert result.historical_p95 == pytest.approx(10.0)

    def test_anomaly_dict_drops_empty_fields(self, now):
        history = _gauges("cpu", [5.0] * 10, now)
        data = detect_anomaly(create_gauge("cpu", 6.0), history).to_dict()
        assert data["reason"] == "statistical_outlier"
        assert "threshold" not in data


# ---------------------------------------------------------------------------
# Formatting and serialization
# ---------------------------------------------------------------------------


class TestFormatting:
    @pytest.mark.parametrize(
        ("value", "unit", "expected"),
        [
            (1500.0, "ms", "1.50s"),
            (250.0, "ms", "250ms"),
            (0.125, "percentage", "12.5%"),
            (2048.0, "bytes", "2.00KB"),
            (3 * 1024**2, "bytes", "3.00MB"),
            (5, "count", "5 count"),
            (5, None, "5"),
        ],
    )
    def test_format_value(self, value, unit, expected):
        assert create_gauge("m", value, unit=unit).format_value() == expected

    def test_missing_value(self):
        assert MetricSummary(name="m", value=None).format_value() == "N/A"

    def test_histogram_summary_has_statistics(self):
        summary = create_histogram("latency", [1.0, 2.0], tags=("ci",)).summary()
        assert summary["kind"] == "histogram"
        assert summary["statistics"]["min"] == 1.0
        assert summary["tags"] == ["ci"]

    def test_dict_round_trip(self):
        sample = create_histogram(
            "execution_time.lint",
            [1.0, 2.0, 3.0],
            unit="ms",
            tags=("ci", "nightly"),
            dimensions={"host": "runner-1"},
        )
        assert MetricSummary.from_dict(sample.to_dict()) == sample
