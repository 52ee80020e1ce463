"""Tests for cadence.learning.patterns.

Covers:
- Welford running statistics against a two-pass computation
- Counter bookkeeping and snapshot immutability
- Confidence monotonicity in observation count
- Feedback counters, adaptation history, related patterns
- Type-specific payload validation, integrity checks and warnings
- Pattern id parsing
- Serialization round trip
"""

from __future__ import annotations

import statistics
from dataclasses import replace
from datetime import timedelta

import pytest

from cadence.core.errors import DataIntegrityWarning, ValidationError
from cadence.learning.patterns import (
    ADAPTATION_HISTORY_LIMIT,
    PatternKey,
    PatternModel,
    PatternType,
)

KEY = PatternKey("format-check", PatternType.FILE_EXTENSION, ".py")


def _fold(model, records, now):
    for record in records:
        model = model.update(record, now)
    return model


# ---------------------------------------------------------------------------
# Running statistics
# ---------------------------------------------------------------------------


class TestRunningStatistics:
    def test_welford_matches_two_pass(self, make_record, now):
        durations = [120.0, 95.5, 310.0, 88.0, 1500.0, 240.25, 99.0, 101.0, 4000.0, 12.0]
        model = _fold(
            PatternModel.new(KEY, now),
            [make_record(duration_ms=d) for d in durations],
            now,
        )
        assert model.total_count == len(durations)
        assert model.mean_execution_ms == pytest.approx(statistics.mean(durations))
        assert model.variance_execution_ms == pytest.approx(statistics.variance(durations))
        assert model.std_dev_execution_ms == pytest.approx(statistics.stdev(durations))

    def test_variance_is_zero_below_two_observations(self, make_record, now):
        model = PatternModel.new(KEY, now).update(make_record(duration_ms=300.0), now)
        assert model.mean_execution_ms == 300.0
        assert model.variance_execution_ms == 0.0

    def test_counters(self, make_record, now):
        records = [
            make_record(success=True),
            make_record(success=True, blocked=True),
            make_record(success=False),
        ]
        model = _fold(PatternModel.new(KEY, now), records, now)
        assert model.total_count == 3
        assert model.success_count == 2
        assert model.failure_count == 1
        assert model.block_count == 1
        assert model.success_rate == pytest.approx(2 / 3)
        assert model.check_integrity() == []

    def test_update_returns_new_snapshot(self, make_record, now):
        original = PatternModel.new(KEY, now)
        updated = original.update(make_record(), now)
        assert original.total_count == 0
        assert updated.total_count == 1
        assert updated is not original

    def test_seen_window_tracks_record_timestamps(self, make_record, now):
        early = make_record(timestamp=now - timedelta(days=2))
        late = make_record(timestamp=now - timedelta(hours=1))
        model = PatternModel.new(KEY, late.timestamp)
        model = _fold(model, [late, early], now)
        assert model.first_seen == early.timestamp
        assert model.last_seen == late.timestamp
        assert model.last_updated == now


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------


class TestConfidence:
    def test_non_decreasing_in_observations(self, make_record, now):
        model = PatternModel.new(KEY, now)
        previous = 0.0
        for _ in range(120):
            model = model.update(make_record(), now)
            assert model.confidence >= previous
            previous = model.confidence
        assert model.confidence == pytest.approx(0.9)

    def test_error_rate_lowers_confidence(self, make_record, now):
        model = _fold(PatternModel.new(KEY, now), [make_record()] * 20, now)
        noisy = model
        for _ in range(3):
            noisy = noisy.record_false_positive(now)
        assert noisy.false_positive_count == 3
        assert noisy.error_rate == pytest.approx(0.15)
        assert noisy.confidence == pytest.approx(model.confidence - 0.1)

    def test_false_negative(self, make_record, now):
        model = PatternModel.new(KEY, now).update(make_record(), now)
        assert model.record_false_negative(now).false_negative_count == 1


# ---------------------------------------------------------------------------
# History and relations
# ---------------------------------------------------------------------------


class TestHistory:
    def test_adaptation_history_is_bounded(self, now):
        model = PatternModel.new(KEY, now)
        for i in range(ADAPTATION_HISTORY_LIMIT + 5):
            model = model.with_adaptation("timeout", i, i + 1, "tuning", 0.8, at=now)
        assert len(model.adaptation_history) == ADAPTATION_HISTORY_LIMIT
        assert model.adaptation_history[0].old_value == 5
        assert model.adaptation_history[-1].new_value == ADAPTATION_HISTORY_LIMIT + 5

    def test_related_patterns_skip_self_and_duplicates(self, now):
        model = PatternModel.new(KEY, now)
        model = model.with_related("lint:file_extension:.py")
        model = model.with_related("lint:file_extension:.py")
        model = model.with_related(model.pattern_id)
        assert model.related_patterns == ("lint:file_extension:.py",)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_valid_model(self, make_record, now):
        model = PatternModel.new(KEY, now).update(make_record(), now)
        assert model.validate().is_valid

    @pytest.mark.parametrize(
        ("pattern_type", "key", "message"),
        [
            (PatternType.HOUR_OF_DAY, "24", "hour between 0 and 23"),
            (PatternType.HOUR_OF_DAY, "noon", "hour between 0 and 23"),
            (PatternType.DAY_OF_WEEK, "funday", "weekday name"),
            (PatternType.EXECUTION_TIME_RANGE, "warp", "unknown range"),
            (PatternType.FILE_PATH, "", "requires path field"),
        ],
    )
    def test_invalid_pattern_data(self, now, pattern_type, key, message):
        model = PatternModel.new(PatternKey("lint", pattern_type, key), now)
        report = model.validate()
        assert not report.is_valid
        assert any(message in e for e in report.errors)

    def test_extension_without_dot_warns(self, now):
        model = PatternModel.new(PatternKey("lint", PatternType.FILE_EXTENSION, "py"), now)
        report = model.validate()
        assert report.is_valid
        assert "file_extension pattern should start with '.'" in report.warnings

    def test_integrity_mismatch_is_a_warning(self, now):
        model = replace(PatternModel.new(KEY, now), total_count=3, success_count=1)
        report = model.validate()
        assert report.is_valid
        assert any("total_count does not match" in w for w in report.warnings)

    def test_inconsistent_update_issues_integrity_warning(self, make_record, now):
        model = replace(PatternModel.new(KEY, now), total_count=3, success_count=1)
        with pytest.warns(DataIntegrityWarning, match="total_count does not match"):
            updated = model.update(make_record(), now)
        assert updated.total_count == 4

    def test_raise_if_invalid(self, make_record, now):
        PatternModel.new(KEY, now).update(make_record(), now).validate().raise_if_invalid()
        report = PatternModel.new(PatternKey("lint", PatternType.HOUR_OF_DAY, "24"), now).validate()
        with pytest.raises(ValidationError, match="pattern failed validation") as excinfo:
            report.raise_if_invalid("pattern")
        assert excinfo.value.errors == report.errors

    def test_pattern_data_types_hour(self, now):
        model = PatternModel.new(PatternKey("lint", PatternType.HOUR_OF_DAY, "9"), now)
        assert model.pattern_data == {"hourOfDay": 9}
        assert PatternModel.new(KEY, now).pattern_data == {"extension": ".py"}


# ---------------------------------------------------------------------------
# Pattern ids
# ---------------------------------------------------------------------------


class TestPatternKey:
    def test_from_id_round_trip(self):
        assert PatternKey.from_id(KEY.pattern_id) == KEY

    def test_key_may_contain_colons(self):
        key = PatternKey("lint", PatternType.FILE_PATH, "C:/src/app.py")
        assert PatternKey.from_id(key.pattern_id) == key

    @pytest.mark.parametrize("pattern_id", ["lint", "lint:file_extension", "lint:bogus:.py"])
    def test_malformed_id(self, pattern_id):
        with pytest.raises(ValueError):
            PatternKey.from_id(pattern_id)


# ---------------------------------------------------------------------------
# Scoring and export
# ---------------------------------------------------------------------------


class TestExport:
    def test_pattern_id(self, now):
        assert PatternModel.new(KEY, now).pattern_id == "format-check:file_extension:.py"

    def test_stale_after_thirty_days(self, make_record, now):
        model = _fold(PatternModel.new(KEY, now), [make_record()] * 20, now)
        assert not model.is_stale(now)
        assert model.is_stale(now + timedelta(days=31))

    def test_summary(self, make_record, now):
        model = _fold(PatternModel.new(KEY, now), [make_record(blocked=True)] * 3, now)
        summary = model.summary(now)
        assert summary["pattern_id"] == model.pattern_id
        assert summary["data"] == {"extension": ".py"}
        assert summary["blocked"] == 3
        assert summary["total_executions"] == 3

    def test_dict_round_trip(self, make_record, now):
        model = _fold(PatternModel.new(KEY, now), [make_record(), make_record()], now)
        model = model.with_adaptation("timeout", 3000, 1500, "tuning", 0.9, at=now)
        model = model.with_related("lint:file_extension:.py")
        model = replace(model, metadata={"source": "test"})
        assert PatternModel.from_dict(model.to_dict()) == model
