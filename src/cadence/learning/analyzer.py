"""Insight generation from pattern statistics and metric history.

InsightAnalyzer is stateless apart from its thresholds: every method takes
snapshots (PatternModels, duration samples, MetricSummary windows) and
returns new pending Insights. Persisting them is the engine's job.

Generated insights:

- timeout optimization: recommended = max(p99 * 1.2, mean + 3 * stddev),
  proposed when it falls below the reduction trigger of the current timeout
- pattern refinement: false-positive rate above threshold
- performance degradation: mean of the newer half of a metric window versus
  the older half
- cross-hook correlation: hooks sharing file patterns with similar outcomes
- predictive alert: the newest error-rate sample is anomalous
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from itertools import combinations

from cadence.core.config import InsightConfig, LearningConfig
from cadence.core.logging import get_logger
from cadence.learning.insights import (
    Insight,
    create_cross_hook_correlation,
    create_pattern_refinement,
    create_performance_degradation,
    create_predictive_alert,
    create_timeout_optimization,
)
from cadence.learning.metrics import MetricSummary, detect_anomaly, summarize
from cadence.learning.patterns import PatternModel, PatternType

_logger = get_logger("learning.analyzer")

TIMEOUT_P99_MARGIN = 1.2
TIMEOUT_STDDEV_MARGIN = 3.0

# Pattern types specific enough to indicate two hooks act on the same inputs
CORRELATION_PATTERN_TYPES = frozenset({
    PatternType.FILE_PATH,
    PatternType.FILE_EXTENSION,
    PatternType.CONTENT_HASH,
})


class InsightAnalyzer:
    """Derives pending insights from learned statistics."""

    def __init__(
        self,
        insights: InsightConfig | None = None,
        learning: LearningConfig | None = None,
    ) -> None:
        self.config = insights or InsightConfig()
        self.learning = learning or LearningConfig()

    def timeout_insights(
        self,
        hook_name: str,
        durations_ms: Sequence[float],
        current_timeout_ms: float | None = None,
    ) -> list[Insight]:
        if len(durations_ms) < self.learning.min_executions_for_analysis:
            return []
        stats = summarize(durations_ms)
        if stats.p99 is None or stats.mean is None or stats.std_dev is None:
            return []

        current = current_timeout_ms or self.config.default_timeout_ms
        recommended = max(
            stats.p99 * TIMEOUT_P99_MARGIN,
            stats.mean + TIMEOUT_STDDEV_MARGIN * stats.std_dev,
        )
        if recommended >= current * self.config.timeout_reduction_trigger:
            return []
        return [
            create_timeout_optimization(
                hook_name,
                current=current,
                recommended=round(recommended),
            )
        ]

    def refinement_insights(self, patterns: Sequence[PatternModel]) -> list[Insight]:
        insights: list[Insight] = []
        for pattern in patterns:
            if pattern.total_count < self.learning.min_executions_for_analysis:
                continue
            fp_rate = pattern.false_positive_count / pattern.total_count
            if fp_rate <= self.config.false_positive_threshold:
                continue
            insights.append(
                create_pattern_refinement(
                    pattern.hook_name,
                    pattern_id=pattern.pattern_id,
                    refinement={
                        "strategy": "narrow_scope",
                        "block_rate": round(pattern.block_count / pattern.total_count, 4),
                        "success_rate": round(pattern.success_rate, 4),
                    },
                    false_positive_rate=min(fp_rate, 1.0),
                    pattern_type=pattern.pattern_type.value,
                    current_pattern=pattern.pattern_data,
                )
            )
        return insights

    def degradation_insights(
        self, history: Sequence[MetricSummary], hook_name: str | None = None
    ) -> list[Insight]:
        values = [s.value for s in history if s.value is not None]
        if len(values) < 2 * self.learning.min_executions_for_analysis:
            return []
        half = len(values) // 2
        baseline = summarize(values[:half]).mean
        current = summarize(values[half:]).mean
        if not baseline or current is None:
            return []

        degradation_pct = (current - baseline) / baseline * 100
        if degradation_pct <= self.config.degradation_threshold_pct:
            return []
        return [
            create_performance_degradation(
                hook_name,
                metric=history[-1].name,
                degradation_pct=round(degradation_pct, 2),
                baseline=baseline,
                current=current,
            )
        ]

    def correlation_insights(
        self, patterns_by_hook: Mapping[str, Sequence[PatternModel]]
    ) -> list[Insight]:
        indexed: dict[str, dict[tuple[PatternType, str], PatternModel]] = {
            hook: {
                (p.pattern_type, p.pattern_key): p
                for p in patterns
                if p.pattern_type in CORRELATION_PATTERN_TYPES
                and p.total_count >= self.learning.min_executions_for_analysis
            }
            for hook, patterns in patterns_by_hook.items()
        }

        insights: list[Insight] = []
        for hook_a, hook_b in combinations(sorted(indexed), 2):
            shared = indexed[hook_a].keys() & indexed[hook_b].keys()
            if not shared:
                continue
            similarities = [
                indexed[hook_a][key].similarity(indexed[hook_b][key]) for key in shared
            ]
            strength = sum(similarities) / len(similarities)
            if strength < self.config.correlation_threshold:
                continue
            insights.append(
                create_cross_hook_correlation(
                    [hook_a, hook_b],
                    strength=round(strength, 4),
                    shared_patterns=sorted(f"{t.value}:{k}" for t, k in shared),
                    recommendation=f"Run {hook_a} and {hook_b} together on shared inputs",
                )
            )
        return insights

    def predictive_insights(
        self, hook_name: str, error_rate_history: Sequence[MetricSummary]
    ) -> list[Insight]:
        if len(error_rate_history) < 2:
            return []
        latest = error_rate_history[-1]
        anomaly = detect_anomaly(latest, error_rate_history[:-1])
        if not anomaly.is_anomaly or latest.value is None:
            return []
        probability = min(0.99, 0.5 + latest.value / 2)
        return [
            create_predictive_alert(
                hook_name,
                probability=round(probability, 4),
                timeframe="24h",
                preventive_action=f"Review recent failures of {hook_name} before they block work",
                factors=[anomaly.reason or "anomaly"],
            )
        ]

    def analyze(
        self,
        patterns_by_hook: Mapping[str, Sequence[PatternModel]],
        durations_by_hook: Mapping[str, Sequence[float]],
        metric_history: Mapping[str, Sequence[MetricSummary]],
        current_timeouts: Mapping[str, float] | None = None,
    ) -> list[Insight]:
        """Run every generator and keep insights above the confidence floor.

        ``metric_history`` is keyed by metric name; names of the form
        ``execution_time.<hook>`` feed degradation analysis and
        ``error_rate.<hook>`` feed predictive alerts.
        """
        current_timeouts = current_timeouts or {}
        candidates: list[Insight] = []
        for hook, durations in durations_by_hook.items():
            candidates.extend(self.timeout_insights(hook, durations, current_timeouts.get(hook)))
        for patterns in patterns_by_hook.values():
            candidates.extend(self.refinement_insights(patterns))
        candidates.extend(self.correlation_insights(patterns_by_hook))
        for name, history in metric_history.items():
            family, _, hook = name.partition(".")
            if family == "execution_time":
                candidates.extend(self.degradation_insights(history, hook or None))
            elif family == "error_rate" and hook:
                candidates.extend(self.predictive_insights(hook, history))

        accepted = [
            i for i in candidates if i.confidence >= self.learning.min_insight_confidence
        ]
        _logger.info(
            "insights_generated",
            candidates=len(candidates),
            accepted=len(accepted),
        )
        return accepted


__all__ = ["InsightAnalyzer"]
