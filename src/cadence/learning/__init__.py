"""Learning module: execution records, pattern statistics, metrics and insights."""

from cadence.learning.analyzer import InsightAnalyzer
from cadence.learning.engine import IngestResult, LearningEngine, MetricReport
from cadence.learning.gateway import InMemoryGateway, PersistenceGateway
from cadence.learning.insights import (
    CrossHookCorrelation,
    Insight,
    InsightPriority,
    InsightStatus,
    InsightType,
    PatternRefinement,
    PerformanceDegradation,
    PredictiveAlert,
    TimeoutOptimization,
)
from cadence.learning.metrics import (
    AnomalyResult,
    HistogramStats,
    MetricKind,
    MetricSummary,
    detect_anomaly,
    merge,
    summarize,
)
from cadence.learning.patterns import Adaptation, PatternKey, PatternModel, PatternType
from cadence.learning.records import ExecutionRecord, OutlierResult, PatternFeature

__all__ = [
    # Records
    "ExecutionRecord",
    "OutlierResult",
    "PatternFeature",
    # Patterns
    "Adaptation",
    "PatternKey",
    "PatternModel",
    "PatternType",
    # Metrics
    "AnomalyResult",
    "HistogramStats",
    "MetricKind",
    "MetricSummary",
    "detect_anomaly",
    "merge",
    "summarize",
    # Insights
    "CrossHookCorrelation",
    "Insight",
    "InsightPriority",
    "InsightStatus",
    "InsightType",
    "PatternRefinement",
    "PerformanceDegradation",
    "PredictiveAlert",
    "TimeoutOptimization",
    # Analysis and engine
    "InsightAnalyzer",
    "IngestResult",
    "LearningEngine",
    "MetricReport",
    # Persistence
    "InMemoryGateway",
    "PersistenceGateway",
]
