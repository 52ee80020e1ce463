"""Learning engine: ingestion, feedback, insight lifecycle and reporting.

The engine is synchronous and owns no background work. Every state change
goes through the PersistenceGateway's atomic operations:

- each pattern key touched by a record is updated with ``update_pattern``
- each insight transition runs inside ``update_insight``

so several hook-runner processes can share one store without lost updates
or double-applied insights.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any

from cadence.core.config import EngineConfig
from cadence.core.errors import OperationResult, ValidationReport
from cadence.core.logging import IngestContext, get_logger, with_context
from cadence.learning.analyzer import InsightAnalyzer
from cadence.learning.gateway import PersistenceGateway
from cadence.learning.insights import (
    Insight,
    InsightStatus,
    InsightType,
    PatternRefinement,
    TimeoutOptimization,
)
from cadence.learning.metrics import (
    AnomalyResult,
    MetricSummary,
    create_gauge,
    detect_anomaly,
    merge,
)
from cadence.learning.patterns import PatternKey, PatternModel, PatternType
from cadence.learning.records import ExecutionRecord, OutlierResult
from cadence.utils.time import ensure_utc, utc_now

_logger = get_logger("learning.engine")

EXECUTION_TIME_METRIC = "execution_time"
ERROR_RATE_METRIC = "error_rate"
EXPIRY_SCAN_LIMIT = 1000
ADAPTING_INSIGHT_TYPES = frozenset(
    {InsightType.TIMEOUT_OPTIMIZATION, InsightType.PATTERN_REFINEMENT}
)


def metric_name(family: str, hook_name: str) -> str:
    return f"{family}.{hook_name}"


@dataclass
class IngestResult:
    """What happened to one ingested record."""

    record_id: str
    accepted: bool
    validation: ValidationReport
    outlier: OutlierResult | None = None
    patterns: list[PatternModel] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "accepted": self.accepted,
            "validation": self.validation.to_dict(),
            "outlier": self.outlier.to_dict() if self.outlier else None,
            "patterns_updated": [p.pattern_id for p in self.patterns],
        }


@dataclass
class MetricReport:
    """Aggregate of a metric's recent window plus an anomaly check."""

    summary: MetricSummary
    anomaly: AnomalyResult
    samples: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.summary(),
            "anomaly": self.anomaly.to_dict(),
            "samples": self.samples,
        }


def _fold_record(
    current: PatternModel | None,
    key: PatternKey,
    record: ExecutionRecord,
    now: datetime,
) -> PatternModel:
    model = current if current is not None else PatternModel.new(key, record.timestamp)
    return model.update(record, now)


class LearningEngine:
    """Online pattern learning over a persistence gateway."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        config: EngineConfig | None = None,
        analyzer: InsightAnalyzer | None = None,
    ) -> None:
        self.gateway = gateway
        self.config = config or EngineConfig()
        self.analyzer = analyzer or InsightAnalyzer(self.config.insights, self.config.learning)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, record: ExecutionRecord, now: datetime | None = None) -> IngestResult:
        """Validate, persist and learn from one execution record.

        Invalid records are reported and leave the store untouched.

        Raises:
            PersistenceError: If the gateway fails.
        """
        now = ensure_utc(now or utc_now())
        validation = record.validate()
        with with_context(IngestContext(hook_name=record.hook_name, record_id=record.id)):
            if not validation.is_valid:
                _logger.warning("record_rejected", errors=validation.errors)
                return IngestResult(record.id, accepted=False, validation=validation)

            window = self.gateway.query_recent_executions(
                record.hook_name, self.config.learning.outlier_window
            )
            outlier = record.is_outlier(window)
            if outlier.is_outlier:
                _logger.info(
                    "execution_outlier",
                    reason=outlier.reason,
                    z_score=outlier.z_score,
                    duration_ms=record.duration_ms,
                )

            self.gateway.insert_execution(record)

            patterns: list[PatternModel] = []
            for feature in record.extract_features():
                key = PatternKey(record.hook_name, feature.pattern_type, feature.pattern_key)
                patterns.append(
                    self.gateway.update_pattern(
                        key, partial(_fold_record, key=key, record=record, now=now)
                    )
                )

            self._record_metrics(record, window)
            _logger.debug(
                "record_ingested",
                duration_ms=record.duration_ms,
                success=record.success,
                blocked=record.blocked,
                patterns=len(patterns),
            )
        return IngestResult(
            record.id,
            accepted=True,
            validation=validation,
            outlier=outlier,
            patterns=patterns,
        )

    def _record_metrics(self, record: ExecutionRecord, window: list[ExecutionRecord]) -> None:
        recent = [*window, record]
        failures = sum(1 for r in recent if not r.success)
        self.gateway.insert_metric(
            create_gauge(
                metric_name(EXECUTION_TIME_METRIC, record.hook_name),
                record.duration_ms,
                unit="ms",
                timestamp=record.timestamp,
                source="ingest",
            )
        )
        self.gateway.insert_metric(
            create_gauge(
                metric_name(ERROR_RATE_METRIC, record.hook_name),
                failures / len(recent),
                unit="percentage",
                timestamp=record.timestamp,
                source="ingest",
            )
        )

    def record_feedback(
        self, key: PatternKey, false_positive: bool, now: datetime | None = None
    ) -> PatternModel | None:
        """Count a false positive or false negative against a pattern.

        Returns None when the pattern has never been observed.
        """
        if self.gateway.load_pattern(key) is None:
            return None
        now = now or utc_now()

        def apply(current: PatternModel | None) -> PatternModel:
            model = current if current is not None else PatternModel.new(key, now)
            if false_positive:
                return model.record_false_positive(now)
            return model.record_false_negative(now)

        updated = self.gateway.update_pattern(key, apply)
        _logger.info(
            "pattern_feedback",
            pattern_id=key.pattern_id,
            kind="false_positive" if false_positive else "false_negative",
            error_rate=round(updated.error_rate, 4),
        )
        return updated

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def aggregate_metric(self, name: str, window: int | None = None) -> MetricReport | None:
        """Merge a metric's recent window and test its newest sample.

        Returns None when no samples exist.
        """
        size = window or self.config.learning.anomaly_history + 1
        samples = self.gateway.query_recent_metrics(name, size)
        if not samples:
            return None
        summary = merge(samples, aggregation_period=f"last_{len(samples)}")
        anomaly = detect_anomaly(samples[-1], samples[:-1])
        return MetricReport(summary=summary, anomaly=anomaly, samples=len(samples))

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def generate_insights(
        self, current_timeouts: dict[str, float] | None = None
    ) -> list[Insight]:
        """Analyze every known hook and persist the resulting insights."""
        history_size = self.config.learning.anomaly_history
        patterns_by_hook: dict[str, list[PatternModel]] = {}
        durations_by_hook: dict[str, list[float]] = {}
        metric_history: dict[str, list[MetricSummary]] = {}

        for hook in self.gateway.list_hook_names():
            patterns_by_hook[hook] = self.gateway.query_patterns_by_hook(hook)
            durations_by_hook[hook] = [
                r.duration_ms for r in self.gateway.query_recent_executions(hook, history_size)
            ]
            for family in (EXECUTION_TIME_METRIC, ERROR_RATE_METRIC):
                name = metric_name(family, hook)
                metric_history[name] = self.gateway.query_recent_metrics(name, history_size)

        insights = self.analyzer.analyze(
            patterns_by_hook, durations_by_hook, metric_history, current_timeouts
        )
        for insight in insights:
            self.gateway.insert_insight(insight)
        return insights

    def _transition(self, insight_id: str, operation: str, fn: Any) -> OperationResult:
        with with_context(IngestContext(insight_id=insight_id)):
            result: OperationResult = self.gateway.update_insight(insight_id, fn)
            if not result.success:
                _logger.info("insight_operation_rejected", operation=operation, error=result.error)
        return result

    def apply_insight(
        self, insight_id: str, applied_by: str = "system", now: datetime | None = None
    ) -> OperationResult:
        """Apply an insight and record the change on the patterns it adjusts."""
        now = now or utc_now()
        result = self._transition(
            insight_id, "apply", lambda insight: insight.apply(applied_by, now)
        )
        if result.success:
            self._record_adaptations(insight_id, result.actions, f"applied by {applied_by}", now)
        return result

    def rollback_insight(
        self, insight_id: str, reason: str, now: datetime | None = None
    ) -> OperationResult:
        """Roll back an insight and record the reversal on its patterns."""
        now = now or utc_now()
        result = self._transition(
            insight_id, "rollback", lambda insight: insight.rollback(reason, now)
        )
        if result.success:
            self._record_adaptations(insight_id, result.actions, reason, now)
        return result

    def _adaptation_targets(self, insight: Insight) -> list[PatternKey]:
        pattern_ids = list(insight.related_patterns)
        payload = insight.payload
        if isinstance(payload, PatternRefinement) and payload.pattern_id:
            pattern_ids.append(payload.pattern_id)

        keys: list[PatternKey] = []
        for pattern_id in dict.fromkeys(pattern_ids):
            try:
                keys.append(PatternKey.from_id(pattern_id))
            except ValueError:
                _logger.warning("adaptation_target_invalid", pattern_id=pattern_id)
        if not keys and isinstance(payload, TimeoutOptimization) and insight.hook_name:
            # A hook-wide timeout adjusts every execution-time bucket of the hook
            keys = [
                m.key
                for m in self.gateway.query_patterns_by_hook(insight.hook_name)
                if m.pattern_type == PatternType.EXECUTION_TIME_RANGE
            ]
        return keys

    def _record_adaptations(
        self,
        insight_id: str,
        actions: list[dict[str, Any]],
        reason: str,
        now: datetime,
    ) -> None:
        insight = self.gateway.load_insight(insight_id)
        if insight is None or insight.insight_type not in ADAPTING_INSIGHT_TYPES:
            return
        limit = self.config.learning.adaptation_history_limit

        def record(current: PatternModel | None, key: PatternKey) -> PatternModel:
            model = current if current is not None else PatternModel.new(key, now)
            for action in actions:
                model = model.with_adaptation(
                    action["type"],
                    action.get("old_value"),
                    action.get("new_value"),
                    reason,
                    insight.confidence,
                    at=now,
                    limit=limit,
                )
            return model

        for key in self._adaptation_targets(insight):
            if self.gateway.load_pattern(key) is None:
                continue
            self.gateway.update_pattern(key, partial(record, key=key))
            _logger.debug(
                "pattern_adaptation_recorded",
                pattern_id=key.pattern_id,
                insight_id=insight_id,
                actions=len(actions),
            )

    def validate_insight(
        self,
        insight_id: str,
        result: str,
        actual_impact: float | None = None,
        notes: str = "",
        now: datetime | None = None,
    ) -> OperationResult:
        def add(insight: Insight) -> OperationResult:
            insight.add_validation_result(
                result, actual_impact=actual_impact, notes=notes, now=now
            )
            return OperationResult.ok()

        return self._transition(insight_id, "validate", add)

    def rate_insight(
        self, insight_id: str, rating: int, comment: str = "", user_id: str = "anonymous"
    ) -> OperationResult:
        """Attach user feedback.

        Raises:
            ValueError: If rating is outside 1-5.
        """
        def add(insight: Insight) -> OperationResult:
            insight.add_user_feedback(rating, comment, user_id)
            return OperationResult.ok()

        return self._transition(insight_id, "feedback", add)

    def expire_insights(self, now: datetime | None = None) -> list[str]:
        """Expire pending insights whose expiry predicate holds.

        Returns:
            Ids of the insights expired by this call.
        """
        now = now or utc_now()
        days = self.config.insights.unapplied_expiry_days

        def expire(insight: Insight) -> OperationResult:
            if not insight.should_expire(now, days):
                return OperationResult.rejected("Insight is not due for expiry")
            return insight.expire(now)

        expired: list[str] = []
        pending = self.gateway.query_recent_insights(EXPIRY_SCAN_LIMIT, InsightStatus.PENDING)
        for insight in pending:
            if insight.should_expire(now, days) and self.gateway.update_insight(
                insight.id, expire
            ).success:
                expired.append(insight.id)
        if expired:
            _logger.info("insights_expired", count=len(expired))
        return expired

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def stale_patterns(self, hook_name: str, now: datetime | None = None) -> list[PatternModel]:
        now = now or utc_now()
        return [p for p in self.gateway.query_patterns_by_hook(hook_name) if p.is_stale(now)]

    def hook_summary(self, hook_name: str, now: datetime | None = None) -> dict[str, Any]:
        """Per-hook totals and mean pattern effectiveness.

        Every record contributes exactly one execution-time-range pattern,
        so those patterns partition the hook's executions.
        """
        now = now or utc_now()
        patterns = self.gateway.query_patterns_by_hook(hook_name)
        buckets = [p for p in patterns if p.pattern_type == PatternType.EXECUTION_TIME_RANGE]
        total = sum(p.total_count for p in buckets)
        successes = sum(p.success_count for p in buckets)
        blocks = sum(p.block_count for p in buckets)
        mean_ms = sum(p.mean_execution_ms * p.total_count for p in buckets) / total if total else 0.0
        effectiveness = (
            sum(p.effectiveness(now) for p in patterns) / len(patterns) if patterns else 0.0
        )
        return {
            "hook_name": hook_name,
            "pattern_count": len(patterns),
            "total_executions": total,
            "success_rate": round(successes / total, 4) if total else 0.0,
            "block_rate": round(blocks / total, 4) if total else 0.0,
            "mean_execution_ms": round(mean_ms, 2),
            "effectiveness": round(effectiveness, 4),
            "stale_patterns": sum(1 for p in patterns if p.is_stale(now)),
        }

    def export_report(
        self, now: datetime | None = None, top_n: int = 10, recent_insights: int = 10
    ) -> dict[str, Any]:
        """JSON-serializable report for external report generators."""
        now = now or utc_now()
        hooks = self.gateway.list_hook_names()
        blocked: list[PatternModel] = []
        for hook in hooks:
            blocked.extend(
                p
                for p in self.gateway.query_patterns_by_hook(hook)
                if p.block_count > 0 and p.pattern_type != PatternType.EXECUTION_TIME_RANGE
            )
        blocked.sort(key=lambda p: (p.block_count, p.confidence), reverse=True)

        return {
            "generated_at": now.isoformat(),
            "hooks": {hook: self.hook_summary(hook, now) for hook in hooks},
            "top_blocked_patterns": [
                {**p.summary(now), "block_count": p.block_count} for p in blocked[:top_n]
            ],
            "recent_insights": [
                i.summary() for i in self.gateway.query_recent_insights(recent_insights)
            ],
        }


__all__ = ["IngestResult", "LearningEngine", "MetricReport", "metric_name"]
