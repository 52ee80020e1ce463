"""Insights: recommendations with an apply/validate/rollback lifecycle.

Each insight carries exactly one payload from a closed set of variants.
The variant decides which fields are required and which automatic actions
``apply()`` emits.

State machine::

    pending --apply()--> applied --add_validation_result()--> validated
    applied | validated --rollback(reason)--> rolled_back
    pending --expire()--> expired      (when should_expire() holds)

Lifecycle violations are reported through ``OperationResult`` and never
change state. Payloads may be constructed with missing fields; they are
only rejected by an explicit ``validate()``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, ClassVar

from cadence.core.errors import OperationResult, ValidationReport
from cadence.core.logging import get_logger
from cadence.utils.time import ensure_utc

_logger = get_logger("learning.insights")

UNAPPLIED_EXPIRY_DAYS = 30
MIN_LIVE_CONFIDENCE = 0.1


class InsightType(str, Enum):
    TIMEOUT_OPTIMIZATION = "timeout_optimization"
    PATTERN_REFINEMENT = "pattern_refinement"
    PERFORMANCE_DEGRADATION = "performance_degradation"
    CROSS_HOOK_CORRELATION = "cross_hook_correlation"
    PREDICTIVE_ALERT = "predictive_alert"


class InsightStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    VALIDATED = "validated"
    ROLLED_BACK = "rolled_back"
    EXPIRED = "expired"


class InsightPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def _is_member(enum_cls: type[Enum], value: Any) -> bool:
    return value in {member.value for member in enum_cls}


# =============================================================================
# Payload variants
# =============================================================================


@dataclass(frozen=True)
class TimeoutOptimization:
    """Lower (or raise) a hook's timeout to fit its observed durations."""

    kind: ClassVar[InsightType] = InsightType.TIMEOUT_OPTIMIZATION

    current: float | None = None
    recommended: float | None = None
    reason: str = "execution_time_analysis"

    @property
    def reduction_pct(self) -> float:
        if not self.current or self.recommended is None:
            return 0.0
        return (self.current - self.recommended) / self.current * 100

    def validate(self) -> ValidationReport:
        report = ValidationReport()
        if self.current is None or self.recommended is None:
            report.errors.append("timeout_optimization requires current and recommended")
        elif self.current <= 0 or self.recommended <= 0:
            report.errors.append("timeout_optimization timeouts must be positive")
        return report

    def actions(self, insight: Insight, at: str) -> list[dict[str, Any]]:
        return [{
            "type": "update_parameter",
            "parameter": "timeout",
            "hook_name": insight.hook_name,
            "old_value": self.current,
            "new_value": self.recommended,
            "timestamp": at,
        }]


@dataclass(frozen=True)
class PatternRefinement:
    """Narrow a pattern that produces too many false positives."""

    kind: ClassVar[InsightType] = InsightType.PATTERN_REFINEMENT

    pattern_id: str | None = None
    refinement: dict[str, Any] = field(default_factory=dict)
    false_positive_rate: float = 0.0
    pattern_type: str | None = None
    current_pattern: dict[str, Any] = field(default_factory=dict)
    reason: str = "pattern_analysis"

    def validate(self) -> ValidationReport:
        report = ValidationReport()
        if not self.pattern_id and not self.pattern_type:
            report.errors.append("pattern_refinement requires pattern_id or pattern_type")
        if not 0.0 <= self.false_positive_rate <= 1.0:
            report.errors.append("pattern_refinement false_positive_rate must be between 0 and 1")
        return report

    def actions(self, insight: Insight, at: str) -> list[dict[str, Any]]:
        return [{
            "type": "refine_pattern",
            "pattern_id": self.pattern_id,
            "refinement": dict(self.refinement),
            "old_value": dict(self.current_pattern),
            "new_value": dict(self.refinement),
            "timestamp": at,
        }]


@dataclass(frozen=True)
class PerformanceDegradation:
    """A metric drifted away from its baseline."""

    kind: ClassVar[InsightType] = InsightType.PERFORMANCE_DEGRADATION

    metric: str | None = None
    degradation_pct: float | None = None
    baseline: float | None = None
    current: float | None = None
    trend: str = "increasing"
    timeframe: str = "24h"

    def validate(self) -> ValidationReport:
        report = ValidationReport()
        if not self.metric or self.degradation_pct is None:
            report.errors.append("performance_degradation requires metric and degradation_pct")
        return report

    def actions(self, insight: Insight, at: str) -> list[dict[str, Any]]:
        return [{
            "type": "alert",
            "severity": str(getattr(insight.priority, "value", insight.priority)),
            "message": (
                f"Performance degradation detected: {self.metric} "
                f"degraded by {self.degradation_pct}%"
            ),
            "timestamp": at,
        }]


@dataclass(frozen=True)
class CrossHookCorrelation:
    """Two or more hooks behave alike on the same patterns."""

    kind: ClassVar[InsightType] = InsightType.CROSS_HOOK_CORRELATION

    hooks: tuple[str, ...] = ()
    strength: float = 0.0
    shared_patterns: tuple[str, ...] = ()
    correlation_type: str = "pattern_overlap"
    recommendation: str | None = None

    def validate(self) -> ValidationReport:
        report = ValidationReport()
        if len(self.hooks) < 2:
            report.errors.append("cross_hook_correlation requires at least 2 hooks")
        if not 0.0 <= self.strength <= 1.0:
            report.errors.append("cross_hook_correlation strength must be between 0 and 1")
        return report

    def actions(self, insight: Insight, at: str) -> list[dict[str, Any]]:
        return [{
            "type": "enable_collaboration",
            "hooks": list(self.hooks),
            "collaboration_type": self.correlation_type,
            "timestamp": at,
        }]


@dataclass(frozen=True)
class PredictiveAlert:
    """A failure is likely within a timeframe unless prevented."""

    kind: ClassVar[InsightType] = InsightType.PREDICTIVE_ALERT

    probability: float | None = None
    timeframe: str | None = None
    preventive_action: str | None = None
    prediction: str = "failure"
    factors: tuple[str, ...] = ()

    def validate(self) -> ValidationReport:
        report = ValidationReport()
        if self.probability is None or not self.timeframe:
            report.errors.append("predictive_alert requires probability and timeframe")
        elif not 0.0 <= self.probability <= 1.0:
            report.errors.append("predictive_alert probability must be between 0 and 1")
        if not self.preventive_action:
            report.warnings.append("predictive_alert has no preventive_action")
        return report

    def actions(self, insight: Insight, at: str) -> list[dict[str, Any]]:
        return [{
            "type": "preventive_action",
            "action": self.preventive_action,
            "reason": self.prediction,
            "timestamp": at,
        }]


InsightPayload = (
    TimeoutOptimization
    | PatternRefinement
    | PerformanceDegradation
    | CrossHookCorrelation
    | PredictiveAlert
)

PAYLOAD_TYPES: dict[InsightType, type[InsightPayload]] = {
    cls.kind: cls
    for cls in (
        TimeoutOptimization,
        PatternRefinement,
        PerformanceDegradation,
        CrossHookCorrelation,
        PredictiveAlert,
    )
}

# Payload fields held as tuples in memory and lists in JSON
_TUPLE_FIELDS = frozenset({"hooks", "shared_patterns", "factors"})


def payload_to_dict(payload: InsightPayload) -> dict[str, Any]:
    data: dict[str, Any] = {"kind": payload.kind.value}
    for name in payload.__dataclass_fields__:
        value = getattr(payload, name)
        if isinstance(value, tuple):
            value = list(value)
        elif isinstance(value, dict):
            value = dict(value)
        data[name] = value
    return data


def payload_from_dict(data: dict[str, Any]) -> InsightPayload:
    """Rebuild a payload from ``payload_to_dict`` output.

    Raises:
        ValueError: If the kind is unknown.
    """
    kind = InsightType(data["kind"])
    cls = PAYLOAD_TYPES[kind]
    kwargs = {
        name: tuple(data[name]) if name in _TUPLE_FIELDS else data[name]
        for name in cls.__dataclass_fields__
        if name in data
    }
    return cls(**kwargs)


# =============================================================================
# Insight
# =============================================================================


@dataclass
class Insight:
    """A proposed or applied adaptation and its lifecycle record."""

    payload: InsightPayload
    confidence: float = 0.0
    priority: InsightPriority = InsightPriority.MEDIUM
    hook_name: str | None = None
    hook_family: str | None = None
    source: str = "analysis"
    category: str = "general"

    estimated_impact: float = 0.0
    """Expected relative change, normally in [-1, 1]."""

    actual_impact: float | None = None
    affected_hooks: list[str] = field(default_factory=list)
    related_patterns: list[str] = field(default_factory=list)

    status: InsightStatus = InsightStatus.PENDING
    applied: bool = False
    applied_at: datetime | None = None
    applied_by: str | None = None
    rollback_at: datetime | None = None
    rollback_reason: str | None = None

    automatic_actions: list[dict[str, Any]] = field(default_factory=list)
    validation_results: list[dict[str, Any]] = field(default_factory=list)
    user_feedback: list[dict[str, Any]] = field(default_factory=list)

    expires_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        self.created_at = ensure_utc(self.created_at)
        if self.expires_at is not None:
            self.expires_at = ensure_utc(self.expires_at)

    @property
    def insight_type(self) -> InsightType:
        return self.payload.kind

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def apply(self, applied_by: str = "system", now: datetime | None = None) -> OperationResult:
        """Mark the insight applied and emit its automatic actions.

        Rejected without any change when already applied or expired.
        """
        if self.applied:
            return self._reject("apply", "Insight already applied")
        if self.status == InsightStatus.EXPIRED:
            return self._reject("apply", "Insight has expired")

        now = now or datetime.now(UTC)
        self.applied = True
        self.applied_at = now
        self.applied_by = applied_by
        self.status = InsightStatus.APPLIED
        self.automatic_actions = self.payload.actions(self, now.isoformat())

        _logger.info(
            "insight_applied",
            insight_id=self.id,
            insight_type=self.insight_type.value,
            applied_by=applied_by,
            action_count=len(self.automatic_actions),
        )
        return OperationResult.ok(list(self.automatic_actions))

    def rollback(self, reason: str, now: datetime | None = None) -> OperationResult:
        """Reverse an applied insight.

        Returns the mirror image of the automatic actions: each action type
        is prefixed with ``rollback_`` and old/new values are swapped.
        """
        if not self.applied:
            return self._reject("rollback", "Insight not applied")
        if self.status == InsightStatus.ROLLED_BACK:
            return self._reject("rollback", "Insight already rolled back")

        now = now or datetime.now(UTC)
        self.rollback_at = now
        self.rollback_reason = reason
        self.status = InsightStatus.ROLLED_BACK

        rollback_actions = [self._mirror(action, now) for action in self.automatic_actions]
        _logger.info(
            "insight_rolled_back",
            insight_id=self.id,
            insight_type=self.insight_type.value,
            reason=reason,
        )
        return OperationResult.ok(rollback_actions)

    @staticmethod
    def _mirror(action: dict[str, Any], now: datetime) -> dict[str, Any]:
        mirrored = dict(action)
        mirrored["type"] = f"rollback_{action['type']}"
        if "old_value" in action and "new_value" in action:
            mirrored["old_value"] = action["new_value"]
            mirrored["new_value"] = action["old_value"]
        mirrored["rollback_timestamp"] = now.isoformat()
        return mirrored

    def add_validation_result(
        self,
        result: str,
        validation_type: str = "manual",
        metrics: dict[str, Any] | None = None,
        notes: str = "",
        actual_impact: float | None = None,
        now: datetime | None = None,
    ) -> None:
        """Record an observed outcome; an applied insight becomes validated."""
        now = now or datetime.now(UTC)
        self.validation_results.append({
            "timestamp": now.isoformat(),
            "type": validation_type,
            "result": result,
            "metrics": dict(metrics or {}),
            "notes": notes,
        })
        if actual_impact is not None:
            self.actual_impact = actual_impact
        if self.status == InsightStatus.APPLIED:
            self.status = InsightStatus.VALIDATED
            _logger.info("insight_validated", insight_id=self.id, result=result)

    def add_user_feedback(
        self,
        rating: int,
        comment: str = "",
        user_id: str = "anonymous",
        now: datetime | None = None,
    ) -> None:
        """Record a 1-5 rating.

        Raises:
            ValueError: If rating is outside 1-5.
        """
        if not 1 <= rating <= 5:
            raise ValueError(f"rating must be between 1 and 5, got {rating}")
        self.user_feedback.append({
            "timestamp": (now or datetime.now(UTC)).isoformat(),
            "rating": rating,
            "comment": comment,
            "user_id": user_id,
        })

    def should_expire(
        self,
        now: datetime | None = None,
        unapplied_expiry_days: int = UNAPPLIED_EXPIRY_DAYS,
    ) -> bool:
        """Whether a pending insight is due for expiry.

        Pure predicate; a caller-owned scheduler decides when to ask.
        """
        if self.status != InsightStatus.PENDING:
            return False
        now = now or datetime.now(UTC)
        if self.expires_at is not None and self.expires_at < now:
            return True
        if now - self.created_at > timedelta(days=unapplied_expiry_days):
            return True
        return self.confidence < MIN_LIVE_CONFIDENCE

    def expire(self, now: datetime | None = None) -> OperationResult:
        if self.status != InsightStatus.PENDING:
            return self._reject("expire", f"Cannot expire insight in status {self.status.value}")
        self.status = InsightStatus.EXPIRED
        if self.expires_at is None:
            self.expires_at = now or datetime.now(UTC)
        _logger.info("insight_expired", insight_id=self.id)
        return OperationResult.ok()

    def _reject(self, operation: str, error: str) -> OperationResult:
        _logger.debug(
            "insight_transition_rejected",
            insight_id=self.id,
            operation=operation,
            status=str(getattr(self.status, "value", self.status)),
            error=error,
        )
        return OperationResult.rejected(error)

    # ------------------------------------------------------------------
    # Scoring and validation
    # ------------------------------------------------------------------

    def effectiveness(self) -> float:
        """Blend of impact accuracy, user ratings and validation success.

        Zero until applied. Without a measured impact, the magnitude of the
        estimate (weighted 0.3) stands in for the accuracy term.
        """
        if not self.applied:
            return 0.0

        score = 0.0
        if self.actual_impact is not None:
            score += (1 - abs(self.actual_impact - self.estimated_impact)) * 0.5
        else:
            score += abs(self.estimated_impact) * 0.3

        if self.user_feedback:
            mean_rating = sum(f.get("rating", 0) for f in self.user_feedback) / len(
                self.user_feedback
            )
            score += (mean_rating / 5) * 0.3

        if self.validation_results:
            successes = sum(1 for v in self.validation_results if v.get("result") == "success")
            score += (successes / len(self.validation_results)) * 0.2

        return max(0.0, min(1.0, score))

    def validate(self) -> ValidationReport:
        report = ValidationReport()
        if not isinstance(self.payload, tuple(PAYLOAD_TYPES.values())):
            report.errors.append("payload must be one of the insight variants")
        else:
            report.extend(self.payload.validate())
        if not 0.0 <= self.confidence <= 1.0:
            report.errors.append("confidence must be between 0 and 1")
        if not _is_member(InsightPriority, self.priority):
            report.errors.append("priority must be one of: low, medium, high, critical")
        if not _is_member(InsightStatus, self.status):
            report.errors.append(
                "status must be one of: pending, applied, validated, rolled_back, expired"
            )
        if not -1.0 <= self.estimated_impact <= 1.0:
            report.warnings.append("estimated_impact should be between -1 and 1")
        return report

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def summary(self) -> dict[str, Any]:
        def pct(value: float) -> str:
            return f"+{round(value * 100)}%" if value > 0 else f"{round(value * 100)}%"

        return {
            "id": self.id,
            "type": self.insight_type.value,
            "hook": self.hook_name,
            "priority": self.priority.value,
            "confidence": f"{round(self.confidence * 100)}%",
            "status": self.status.value,
            "applied": self.applied,
            "estimated_impact": pct(self.estimated_impact),
            "actual_impact": (
                pct(self.actual_impact) if self.actual_impact is not None else "Not measured"
            ),
            "effectiveness": (
                f"{round(self.effectiveness() * 100)}%" if self.applied else "N/A"
            ),
            "created_at": self.created_at.isoformat(),
        }

    def to_dict(self) -> dict[str, Any]:
        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "insight_type": self.insight_type.value,
            "payload": payload_to_dict(self.payload),
            "confidence": self.confidence,
            "priority": self.priority.value,
            "hook_name": self.hook_name,
            "hook_family": self.hook_family,
            "source": self.source,
            "category": self.category,
            "estimated_impact": self.estimated_impact,
            "actual_impact": self.actual_impact,
            "affected_hooks": list(self.affected_hooks),
            "related_patterns": list(self.related_patterns),
            "status": self.status.value,
            "applied": self.applied,
            "applied_at": iso(self.applied_at),
            "applied_by": self.applied_by,
            "rollback_at": iso(self.rollback_at),
            "rollback_reason": self.rollback_reason,
            "automatic_actions": [dict(a) for a in self.automatic_actions],
            "validation_results": [dict(v) for v in self.validation_results],
            "user_feedback": [dict(f) for f in self.user_feedback],
            "expires_at": iso(self.expires_at),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Insight:
        def parse(value: str | None) -> datetime | None:
            return datetime.fromisoformat(value) if value else None

        return cls(
            id=data["id"],
            payload=payload_from_dict(data["payload"]),
            confidence=data.get("confidence", 0.0),
            priority=InsightPriority(data.get("priority", "medium")),
            hook_name=data.get("hook_name"),
            hook_family=data.get("hook_family"),
            source=data.get("source", "analysis"),
            category=data.get("category", "general"),
            estimated_impact=data.get("estimated_impact", 0.0),
            actual_impact=data.get("actual_impact"),
            affected_hooks=list(data.get("affected_hooks") or []),
            related_patterns=list(data.get("related_patterns") or []),
            status=InsightStatus(data.get("status", "pending")),
            applied=bool(data.get("applied", False)),
            applied_at=parse(data.get("applied_at")),
            applied_by=data.get("applied_by"),
            rollback_at=parse(data.get("rollback_at")),
            rollback_reason=data.get("rollback_reason"),
            automatic_actions=list(data.get("automatic_actions") or []),
            validation_results=list(data.get("validation_results") or []),
            user_feedback=list(data.get("user_feedback") or []),
            expires_at=parse(data.get("expires_at")),
            created_at=parse(data.get("created_at")) or datetime.now(UTC),
        )


# =============================================================================
# Factories
# =============================================================================


def create_timeout_optimization(
    hook_name: str,
    current: float,
    recommended: float,
    confidence: float = 0.8,
    reason: str = "execution_time_analysis",
    **options: Any,
) -> Insight:
    """A reduction above 30% is high priority."""
    payload = TimeoutOptimization(current=current, recommended=recommended, reason=reason)
    reduction = payload.reduction_pct
    options.setdefault(
        "priority", InsightPriority.HIGH if reduction > 30 else InsightPriority.MEDIUM
    )
    return Insight(
        payload=payload,
        hook_name=hook_name,
        confidence=confidence,
        category="performance",
        estimated_impact=reduction / 100,
        **options,
    )


def create_pattern_refinement(
    hook_name: str,
    pattern_id: str,
    refinement: dict[str, Any],
    false_positive_rate: float,
    pattern_type: str | None = None,
    current_pattern: dict[str, Any] | None = None,
    confidence: float = 0.7,
    **options: Any,
) -> Insight:
    """A false-positive rate above 0.2 is high priority."""
    payload = PatternRefinement(
        pattern_id=pattern_id,
        refinement=dict(refinement),
        false_positive_rate=false_positive_rate,
        pattern_type=pattern_type,
        current_pattern=dict(current_pattern or {}),
    )
    options.setdefault(
        "priority",
        InsightPriority.HIGH if false_positive_rate > 0.2 else InsightPriority.MEDIUM,
    )
    options.setdefault("related_patterns", [pattern_id])
    return Insight(
        payload=payload,
        hook_name=hook_name,
        confidence=confidence,
        category="accuracy",
        estimated_impact=false_positive_rate * 0.5,
        **options,
    )


def create_performance_degradation(
    hook_name: str | None,
    metric: str,
    degradation_pct: float,
    baseline: float | None = None,
    current: float | None = None,
    confidence: float = 0.9,
    **options: Any,
) -> Insight:
    """Degradation above 50% is critical, above 25% high."""
    if degradation_pct > 50:
        priority = InsightPriority.CRITICAL
    elif degradation_pct > 25:
        priority = InsightPriority.HIGH
    else:
        priority = InsightPriority.MEDIUM
    options.setdefault("priority", priority)
    return Insight(
        payload=PerformanceDegradation(
            metric=metric, degradation_pct=degradation_pct, baseline=baseline, current=current
        ),
        hook_name=hook_name,
        confidence=confidence,
        category="performance",
        estimated_impact=-degradation_pct / 100,
        **options,
    )


def create_cross_hook_correlation(
    hooks: list[str],
    strength: float,
    shared_patterns: list[str] | None = None,
    recommendation: str | None = None,
    correlation_type: str = "pattern_overlap",
    **options: Any,
) -> Insight:
    """Confidence equals the correlation strength; above 0.8 is high priority."""
    options.setdefault(
        "priority", InsightPriority.HIGH if strength > 0.8 else InsightPriority.MEDIUM
    )
    options.setdefault("affected_hooks", list(hooks))
    return Insight(
        payload=CrossHookCorrelation(
            hooks=tuple(hooks),
            strength=strength,
            shared_patterns=tuple(shared_patterns or ()),
            correlation_type=correlation_type,
            recommendation=recommendation,
        ),
        confidence=strength,
        category="optimization",
        source="correlation",
        estimated_impact=strength * 0.3,
        **options,
    )


def create_predictive_alert(
    hook_name: str,
    probability: float,
    timeframe: str,
    preventive_action: str,
    prediction: str = "failure",
    factors: list[str] | None = None,
    confidence: float | None = None,
    **options: Any,
) -> Insight:
    """Probability above 0.8 is critical, above 0.6 high."""
    if probability > 0.8:
        priority = InsightPriority.CRITICAL
    elif probability > 0.6:
        priority = InsightPriority.HIGH
    else:
        priority = InsightPriority.MEDIUM
    options.setdefault("priority", priority)
    return Insight(
        payload=PredictiveAlert(
            probability=probability,
            timeframe=timeframe,
            preventive_action=preventive_action,
            prediction=prediction,
            factors=tuple(factors or ()),
        ),
        hook_name=hook_name,
        confidence=confidence if confidence is not None else probability,
        category="prediction",
        source="prediction",
        estimated_impact=-probability,
        **options,
    )


__all__ = [
    "CrossHookCorrelation",
    "Insight",
    "InsightPayload",
    "InsightPriority",
    "InsightStatus",
    "InsightType",
    "PatternRefinement",
    "PerformanceDegradation",
    "PredictiveAlert",
    "TimeoutOptimization",
    "create_cross_hook_correlation",
    "create_pattern_refinement",
    "create_performance_degradation",
    "create_predictive_alert",
    "create_timeout_optimization",
    "payload_from_dict",
    "payload_to_dict",
]
