"""Pure scoring functions for pattern statistics.

Confidence, effectiveness, staleness and similarity are computed from a
PatternModel snapshot's fields and a reference time, never by mutating the
snapshot. Each formula is an additive sum of capped components, clamped to
[0, 1]:

    confidence = sample_size (0.1-0.4)
               + consistency (0.1-0.3, higher away from a 50% success rate)
               + recency     (0.05-0.2, by hours since last seen)
               - error_rate_penalty (0.05-0.1)

    effectiveness = 0.4 * success_rate
                  + 0.3 * confidence
                  - 0.2 * error_rate
                  + recency_bonus (<= 0.1)
                  + performance_bonus (<= 0.1)
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cadence.learning.patterns import PatternModel

# (minimum total_count, score)
SAMPLE_SIZE_STEPS: tuple[tuple[int, float], ...] = ((100, 0.4), (50, 0.3), (20, 0.2), (10, 0.1))
# (distance of success_rate from 0.5, score)
CONSISTENCY_STEPS: tuple[tuple[float, float], ...] = ((0.4, 0.3), (0.3, 0.2), (0.2, 0.1))
# (hours since last seen, exclusive upper bound, score)
RECENCY_STEPS: tuple[tuple[float, float], ...] = ((24, 0.2), (72, 0.15), (168, 0.1), (720, 0.05))
# (error rate, exclusive lower bound, penalty)
ERROR_PENALTY_STEPS: tuple[tuple[float, float], ...] = ((0.1, 0.1), (0.05, 0.05))

STALE_AFTER_DAYS = 30.0
STALE_MIN_CONFIDENCE = 0.3
STALE_MIN_COUNT = 10
STALE_MAX_ERROR_RATE = 0.2

SIMILARITY_DATA_WEIGHT = 0.5
SIMILARITY_SUCCESS_WEIGHT = 0.2
SIMILARITY_TIME_WEIGHT = 0.2
SIMILARITY_SAME_HOOK_BONUS = 0.1


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600.0


def sample_size_component(total_count: int) -> float:
    for minimum, score in SAMPLE_SIZE_STEPS:
        if total_count >= minimum:
            return score
    return 0.0


def consistency_component(success_rate: float) -> float:
    distance = abs(success_rate - 0.5)
    for minimum, score in CONSISTENCY_STEPS:
        if distance > minimum:
            return score
    return 0.0


def recency_component(hours_since_last_seen: float) -> float:
    for upper, score in RECENCY_STEPS:
        if hours_since_last_seen < upper:
            return score
    return 0.0


def error_rate_penalty(error_rate: float) -> float:
    for lower, penalty in ERROR_PENALTY_STEPS:
        if error_rate > lower:
            return penalty
    return 0.0


def confidence_score(
    total_count: int,
    success_rate: float,
    hours_since_last_seen: float,
    error_rate: float,
) -> float:
    """Confidence in [0, 1] from sample size, consistency and recency.

    Non-decreasing in total_count when the other inputs are fixed.
    """
    score = (
        sample_size_component(total_count)
        + consistency_component(success_rate)
        + recency_component(hours_since_last_seen)
        - error_rate_penalty(error_rate)
    )
    return clamp(score)


def effectiveness_score(
    success_rate: float,
    confidence: float,
    error_rate: float,
    days_since_last_seen: float,
    mean_execution_ms: float,
) -> float:
    """Effectiveness in [0, 1] of a pattern as a predictor."""
    score = success_rate * 0.4 + confidence * 0.3 - error_rate * 0.2

    if days_since_last_seen < 7:
        score += 0.1
    elif days_since_last_seen < 14:
        score += 0.05

    if mean_execution_ms < 1000:
        score += 0.1
    elif mean_execution_ms < 3000:
        score += 0.05

    return clamp(score)


def stale(days_since_last_seen: float, confidence: float, total_count: int, error_rate: float) -> bool:
    """Whether statistics are outdated or unreliable enough to prune."""
    if days_since_last_seen > STALE_AFTER_DAYS:
        return True
    if confidence < STALE_MIN_CONFIDENCE and total_count < STALE_MIN_COUNT:
        return True
    return error_rate > STALE_MAX_ERROR_RATE


def path_similarity(path_a: str, path_b: str) -> float:
    """Fraction of path segments of one path that also occur in the other."""
    if path_a == path_b:
        return 1.0
    segments_a = path_a.split("/")
    segments_b = path_b.split("/")
    other = set(segments_b)
    common = sum(1 for seg in segments_a if seg in other)
    return common / max(len(segments_a), len(segments_b), 1)


def pattern_confidence(model: PatternModel, now: datetime) -> float:
    return confidence_score(
        model.total_count,
        model.success_rate,
        hours_between(model.last_seen, now),
        model.error_rate,
    )


def pattern_effectiveness(model: PatternModel, now: datetime) -> float:
    return effectiveness_score(
        model.success_rate,
        model.confidence,
        model.error_rate,
        hours_between(model.last_seen, now) / 24.0,
        model.mean_execution_ms,
    )


def pattern_is_stale(model: PatternModel, now: datetime) -> bool:
    return stale(
        hours_between(model.last_seen, now) / 24.0,
        model.confidence,
        model.total_count,
        model.error_rate,
    )


def pattern_similarity(a: PatternModel, b: PatternModel) -> float:
    """Similarity in [0, 1]; 0 when the pattern types differ."""
    if a.pattern_type != b.pattern_type:
        return 0.0

    # Local import: patterns imports this module at load time
    from cadence.learning.patterns import PatternType

    if a.pattern_type == PatternType.FILE_PATH:
        data = path_similarity(a.pattern_key, b.pattern_key)
    else:
        data = 1.0 if a.pattern_key == b.pattern_key else 0.0

    score = data * SIMILARITY_DATA_WEIGHT
    score += (1 - abs(a.success_rate - b.success_rate)) * SIMILARITY_SUCCESS_WEIGHT

    slowest = max(a.mean_execution_ms, b.mean_execution_ms, 1.0)
    time_diff = abs(a.mean_execution_ms - b.mean_execution_ms) / slowest
    score += (1 - min(time_diff, 1.0)) * SIMILARITY_TIME_WEIGHT

    if a.hook_name == b.hook_name:
        score += SIMILARITY_SAME_HOOK_BONUS

    return clamp(score)
