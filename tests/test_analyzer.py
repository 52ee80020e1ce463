"""Tests for cadence.learning.analyzer."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from cadence.core.config import InsightConfig, LearningConfig
from cadence.learning.analyzer import InsightAnalyzer
from cadence.learning.insights import (
    CrossHookCorrelation,
    InsightPriority,
    InsightType,
    PatternRefinement,
)
from cadence.learning.metrics import create_gauge
from cadence.learning.patterns import PatternKey, PatternModel, PatternType


@pytest.fixture
def analyzer():
    return InsightAnalyzer()


def _pattern(now, hook="format-check", pattern_type=PatternType.FILE_EXTENSION, key=".py",
             **fields):
    base = PatternModel.new(PatternKey(hook, pattern_type, key), now)
    defaults = {"total_count": 10, "success_count": 10, "mean_execution_ms": 200.0}
    defaults.update(fields)
    return replace(base, **defaults)


def _series(name, values, now):
    return [
        create_gauge(name, v, timestamp=now + timedelta(seconds=i)) for i, v in enumerate(values)
    ]


# ---------------------------------------------------------------------------
# Timeout optimization
# ---------------------------------------------------------------------------


class TestTimeouts:
    def test_recommends_lower_timeout(self, analyzer):
        [insight] = analyzer.timeout_insights("format-check", [100.0] * 20)
        assert insight.insight_type == InsightType.TIMEOUT_OPTIMIZATION
        assert insight.payload.current == 3000.0
        assert insight.payload.recommended == 120
        assert insight.priority == InsightPriority.HIGH

    def test_uses_spread_when_larger(self, analyzer):
        durations = [100.0, 300.0] * 10
        [insight] = analyzer.timeout_insights("lint", durations, current_timeout_ms=5000)
        # mean 200 + 3 * 100 beats p99 * 1.2
        assert insight.payload.recommended == 500
        assert insight.payload.current == 5000

    def test_needs_enough_samples(self, analyzer):
        assert analyzer.timeout_insights("lint", [100.0] * 9) == []

    def test_no_insight_when_timeout_already_tight(self, analyzer):
        assert analyzer.timeout_insights("lint", [100.0] * 20, current_timeout_ms=150) == []


# ---------------------------------------------------------------------------
# Pattern refinement
# ---------------------------------------------------------------------------


class TestRefinement:
    def test_false_positive_rate_above_threshold(self, analyzer, now):
        pattern = _pattern(now, false_positive_count=3, block_count=4)
        [insight] = analyzer.refinement_insights([pattern])
        assert isinstance(insight.payload, PatternRefinement)
        assert insight.payload.pattern_id == pattern.pattern_id
        assert insight.payload.false_positive_rate == pytest.approx(0.3)
        assert insight.payload.current_pattern == {"extension": ".py"}
        assert insight.payload.refinement["block_rate"] == 0.4
        assert insight.priority == InsightPriority.HIGH
        assert insight.estimated_impact == pytest.approx(0.15)

    def test_rate_at_threshold_is_ignored(self, analyzer, now):
        assert analyzer.refinement_insights([_pattern(now, false_positive_count=2)]) == []

    def test_small_patterns_are_ignored(self, analyzer, now):
        pattern = _pattern(now, total_count=5, success_count=5, false_positive_count=5)
        assert analyzer.refinement_insights([pattern]) == []


# ---------------------------------------------------------------------------
# Degradation
# ---------------------------------------------------------------------------


class TestDegradation:
    def test_newer_half_slower(self, analyzer, now):
        history = _series("execution_time.lint", [100.0] * 10 + [140.0] * 10, now)
        [insight] = analyzer.degradation_insights(history, "lint")
        assert insight.insight_type == InsightType.PERFORMANCE_DEGRADATION
        assert insight.payload.degradation_pct == pytest.approx(40.0)
        assert insight.payload.baseline == 100.0
        assert insight.payload.metric == "execution_time.lint"
        assert insight.hook_name == "lint"
        assert insight.priority == InsightPriority.HIGH

    def test_small_drift_is_ignored(self, analyzer, now):
        history = _series("execution_time.lint", [100.0] * 10 + [110.0] * 10, now)
        assert analyzer.degradation_insights(history, "lint") == []

    def test_needs_two_windows(self, analyzer, now):
        history = _series("execution_time.lint", [100.0] * 5 + [900.0] * 5, now)
        assert analyzer.degradation_insights(history, "lint") == []


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------


class TestCorrelation:
    def test_hooks_sharing_patterns(self, analyzer, now):
        patterns = {
            "lint": [_pattern(now, hook="lint")],
            "format-check": [_pattern(now)],
            "docs": [_pattern(now, hook="docs", key=".md")],
        }
        [insight] = analyzer.correlation_insights(patterns)
        assert isinstance(insight.payload, CrossHookCorrelation)
        assert insight.payload.hooks == ("format-check", "lint")
        assert insight.payload.shared_patterns == ("file_extension:.py",)
        assert insight.confidence == pytest.approx(0.9)

    def test_dissimilar_outcomes_are_not_correlated(self, analyzer, now):
        patterns = {
            "lint": [_pattern(now, hook="lint", success_count=0, mean_execution_ms=5000.0)],
            "format-check": [_pattern(now)],
        }
        assert analyzer.correlation_insights(patterns) == []

    def test_generic_pattern_types_are_ignored(self, analyzer, now):
        patterns = {
            hook: [_pattern(now, hook=hook, pattern_type=PatternType.HOUR_OF_DAY, key="9")]
            for hook in ("lint", "format-check")
        }
        assert analyzer.correlation_insights(patterns) == []


# ---------------------------------------------------------------------------
# Predictive alerts and analyze()
# ---------------------------------------------------------------------------


class TestPredictive:
    def test_anomalous_error_rate(self, analyzer, now):
        history = _series("error_rate.lint", [0.0] * 10 + [0.5], now)
        [insight] = analyzer.predictive_insights("lint", history)
        assert insight.insight_type == InsightType.PREDICTIVE_ALERT
        assert insight.payload.probability == pytest.approx(0.75)
        assert insight.payload.factors == ("statistical_outlier",)
        assert insight.priority == InsightPriority.HIGH

    def test_stable_error_rate(self, analyzer, now):
        history = _series("error_rate.lint", [0.0] * 11, now)
        assert analyzer.predictive_insights("lint", history) == []


class TestAnalyze:
    def test_combines_generators(self, analyzer, now):
        insights = analyzer.analyze(
            patterns_by_hook={"lint": [_pattern(now, hook="lint", false_positive_count=3)]},
            durations_by_hook={"lint": [100.0] * 20},
            metric_history={
                "execution_time.lint": _series(
                    "execution_time.lint", [100.0] * 10 + [140.0] * 10, now
                ),
                "error_rate.lint": _series("error_rate.lint", [0.0] * 10 + [0.5], now),
            },
        )
        assert {i.insight_type for i in insights} == {
            InsightType.TIMEOUT_OPTIMIZATION,
            InsightType.PATTERN_REFINEMENT,
            InsightType.PERFORMANCE_DEGRADATION,
            InsightType.PREDICTIVE_ALERT,
        }

    def test_confidence_floor(self, now):
        analyzer = InsightAnalyzer(InsightConfig(), LearningConfig(min_insight_confidence=0.85))
        insights = analyzer.analyze(
            patterns_by_hook={"lint": [_pattern(now, hook="lint", false_positive_count=3)]},
            durations_by_hook={"lint": [100.0] * 20},
            metric_history={},
        )
        assert insights == []

    def test_current_timeouts_are_respected(self, analyzer):
        insights = analyzer.analyze({}, {"lint": [100.0] * 20}, {}, {"lint": 150.0})
        assert insights == []
