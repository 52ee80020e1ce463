"""Tests for cadence.learning.scoring.

Covers the capped additive components of confidence and effectiveness,
the staleness predicate and pattern similarity.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from cadence.learning import scoring
from cadence.learning.patterns import PatternKey, PatternModel, PatternType


class TestConfidence:
    @pytest.mark.parametrize(
        ("count", "expected"),
        [(0, 0.0), (9, 0.0), (10, 0.1), (20, 0.2), (50, 0.3), (100, 0.4), (5000, 0.4)],
    )
    def test_sample_size_steps(self, count, expected):
        assert scoring.sample_size_component(count) == expected

    @pytest.mark.parametrize(
        ("rate", "expected"),
        [(0.5, 0.0), (0.7, 0.0), (0.75, 0.1), (0.85, 0.2), (1.0, 0.3), (0.0, 0.3)],
    )
    def test_consistency_is_symmetric_around_half(self, rate, expected):
        assert scoring.consistency_component(rate) == expected

    @pytest.mark.parametrize(
        ("hours", "expected"),
        [(0, 0.2), (30, 0.15), (100, 0.1), (500, 0.05), (1000, 0.0)],
    )
    def test_recency_steps(self, hours, expected):
        assert scoring.recency_component(hours) == expected

    def test_penalty_steps(self):
        assert scoring.error_rate_penalty(0.0) == 0.0
        assert scoring.error_rate_penalty(0.07) == 0.05
        assert scoring.error_rate_penalty(0.5) == 0.1

    def test_clamped_to_unit_interval(self):
        assert scoring.confidence_score(1, 0.5, 10000, 0.9) == 0.0
        assert scoring.confidence_score(1000, 1.0, 0, 0.0) == pytest.approx(0.9)

    def test_monotonic_in_count(self):
        scores = [scoring.confidence_score(n, 0.95, 2, 0.0) for n in range(0, 300)]
        assert scores == sorted(scores)


class TestEffectiveness:
    def test_full_marks(self):
        score = scoring.effectiveness_score(1.0, 1.0, 0.0, 0.5, 200.0)
        assert score == pytest.approx(0.9)

    def test_performance_bonus_steps(self):
        fast = scoring.effectiveness_score(0.5, 0.5, 0.0, 30, 500.0)
        medium = scoring.effectiveness_score(0.5, 0.5, 0.0, 30, 2000.0)
        slow = scoring.effectiveness_score(0.5, 0.5, 0.0, 30, 5000.0)
        assert fast - medium == pytest.approx(0.05)
        assert medium - slow == pytest.approx(0.05)

    def test_never_negative(self):
        assert scoring.effectiveness_score(0.0, 0.0, 1.0, 100, 9000.0) == 0.0


class TestStale:
    def test_old_patterns_are_stale(self):
        assert scoring.stale(31, 0.9, 500, 0.0)

    def test_unreliable_small_patterns_are_stale(self):
        assert scoring.stale(1, 0.2, 5, 0.0)
        assert not scoring.stale(1, 0.2, 50, 0.0)

    def test_high_error_rate_is_stale(self):
        assert scoring.stale(1, 0.9, 500, 0.25)


class TestSimilarity:
    def _model(self, now, hook, pattern_type, key, **fields):
        return replace(PatternModel.new(PatternKey(hook, pattern_type, key), now), **fields)

    def test_different_types_are_unrelated(self, now):
        a = self._model(now, "lint", PatternType.FILE_EXTENSION, ".py")
        b = self._model(now, "lint", PatternType.HOOK_FAMILY, ".py")
        assert a.similarity(b) == 0.0

    def test_identical_patterns_on_same_hook(self, now):
        a = self._model(now, "lint", PatternType.FILE_EXTENSION, ".py",
                        total_count=10, success_count=9, mean_execution_ms=200.0)
        assert a.similarity(a) == pytest.approx(1.0)

    def test_same_key_across_hooks(self, now):
        a = self._model(now, "lint", PatternType.FILE_EXTENSION, ".py",
                        total_count=10, success_count=10, mean_execution_ms=200.0)
        b = self._model(now, "format", PatternType.FILE_EXTENSION, ".py",
                        total_count=10, success_count=10, mean_execution_ms=100.0)
        # data 0.5 + success 0.2 + time 0.1, no same-hook bonus
        assert a.similarity(b) == pytest.approx(0.8)

    def test_path_similarity(self):
        assert scoring.path_similarity("src/a.py", "src/a.py") == 1.0
        assert scoring.path_similarity("src/app/a.py", "src/app/b.py") == pytest.approx(2 / 3)
        assert scoring.path_similarity("a/b", "c/d") == 0.0
