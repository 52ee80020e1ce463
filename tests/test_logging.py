"""Tests for cadence.core.logging."""

from __future__ import annotations

import json
import logging

import pytest

from cadence.core.logging import (
    IngestContext,
    configure_logging,
    get_current_context,
    get_current_log_path,
    get_logger,
    with_context,
)


class TestContext:
    def test_context_nests_and_restores(self):
        assert get_current_context() is None
        outer = IngestContext(hook_name="lint")
        with with_context(outer):
            with with_context(IngestContext(insight_id="i-1")) as inner:
                assert get_current_context() is inner
            assert get_current_context() is outer
        assert get_current_context() is None

    def test_to_dict_drops_unset_fields(self):
        ctx = IngestContext(hook_name="lint", record_id="r-1")
        assert ctx.to_dict() == {"hook_name": "lint", "record_id": "r-1"}


class TestConfigureLogging:
    def test_both_requires_file(self):
        with pytest.raises(ValueError, match="file_path is required"):
            configure_logging(format="both")

    def test_json_file_output_includes_context(self, tmp_path):
        log_file = tmp_path / "logs" / "cadence.log"
        configure_logging(level="DEBUG", format="json", file_path=log_file)
        assert get_current_log_path() == log_file

        logger = get_logger("engine")
        with with_context(IngestContext(hook_name="format-check", record_id="r-1")):
            logger.info("record_ingested", patterns=8, api_key="sk-secret")
        for handler in logging.getLogger().handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["event"] == "record_ingested"
        assert entry["component"] == "engine"
        assert entry["hook_name"] == "format-check"
        assert entry["record_id"] == "r-1"
        assert entry["patterns"] == 8
        assert entry["api_key"] == "[REDACTED]"
        assert entry["level"] == "info"
        assert "timestamp" in entry

    def test_level_filters_events(self, tmp_path):
        log_file = tmp_path / "cadence.log"
        configure_logging(level="WARNING", format="json", file_path=log_file)
        logger = get_logger("store")
        logger.info("schema_created")
        logger.warning("store_operation_failed", operation="query")
        for handler in logging.getLogger().handlers:
            handler.flush()

        events = [json.loads(line)["event"] for line in log_file.read_text().splitlines()]
        assert events == ["store_operation_failed"]

    def test_explicit_fields_win_over_context(self, tmp_path):
        log_file = tmp_path / "cadence.log"
        configure_logging(level="INFO", format="json", file_path=log_file)
        with with_context(IngestContext(hook_name="lint")):
            get_logger("engine").info("override", hook_name="explicit")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert json.loads(log_file.read_text().splitlines()[-1])["hook_name"] == "explicit"


class TestLoggerBinding:
    def test_bind_and_unbind_are_copies(self):
        logger = get_logger("engine", run="a")
        bound = logger.bind(hook_name="lint")
        assert bound._context == {"component": "engine", "run": "a", "hook_name": "lint"}
        assert logger._context == {"component": "engine", "run": "a"}
        assert bound.unbind("run")._context == {"component": "engine", "hook_name": "lint"}
