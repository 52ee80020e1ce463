"""Tests for the Cadence CLI.

Each test points ``--db`` at a fresh database under tmp_path and parses the
``--json`` output of commands. Logging is raised to ERROR so log lines on
stderr never interleave with JSON on stdout.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from cadence import __version__
from cadence.cli import app

runner = CliRunner()


@pytest.fixture
def db(tmp_path: Path) -> Path:
    return tmp_path / "learning.db"


def invoke(db: Path, *args: str):
    return runner.invoke(app, ["--db", str(db), "--log-level", "ERROR", *args])


def write_runs(path: Path, count: int, **overrides) -> Path:
    lines = []
    for i in range(count):
        record = {
            "hook_name": "format-check",
            "duration_ms": 200 + (i % 5) * 10,
            "hook_family": "formatting",
            "file_path": "src/app/main.py",
        }
        record.update(overrides)
        lines.append(json.dumps(record))
    path.write_text("\n".join(lines) + "\n")
    return path


def ingest_runs(db: Path, tmp_path: Path, count: int = 20) -> None:
    result = invoke(db, "ingest", str(write_runs(tmp_path / "runs.jsonl", count)))
    assert result.exit_code == 0, result.output


def generate_insight_id(db: Path, tmp_path: Path) -> str:
    ingest_runs(db, tmp_path)
    result = invoke(db, "insights", "--generate", "--json")
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["generated"]
    return data["generated"][0]


class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"Cadence v{__version__}" in result.stdout

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("ingest", "patterns", "insights", "apply", "rollback", "report", "metric"):
            assert command in result.stdout

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(
            app, ["--config", str(tmp_path / "missing.yaml"), "--log-level", "ERROR", "report"]
        )
        assert result.exit_code == 1
        assert "Config file not found" in result.stdout

    def test_config_file_sets_store(self, tmp_path):
        db_path = tmp_path / "from-config.db"
        config = tmp_path / "cadence.yaml"
        config.write_text(f"store:\n  path: {db_path}\n")
        runs = write_runs(tmp_path / "runs.jsonl", 3)
        result = runner.invoke(
            app, ["--config", str(config), "--log-level", "ERROR", "ingest", str(runs)]
        )
        assert result.exit_code == 0, result.output
        assert db_path.exists()


class TestIngest:
    def test_ingest_reports_counts(self, tmp_path, db):
        runs = write_runs(tmp_path / "runs.jsonl", 12)
        with runs.open("a") as f:
            f.write("\n")
            f.write("{not json\n")
            f.write(json.dumps({"hook_name": "format-check", "duration_ms": -1}) + "\n")

        result = invoke(db, "ingest", str(runs), "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["accepted"] == 12
        assert data["outliers"] == 0
        assert [r["line"] for r in data["rejected"]] == [14, 15]
        assert "duration_ms must be a non-negative number" in data["rejected"][1]["errors"]

    def test_ingest_human_output(self, tmp_path, db):
        result = invoke(db, "ingest", str(write_runs(tmp_path / "runs.jsonl", 3)))
        assert result.exit_code == 0
        assert "Ingested 3 record(s)" in result.stdout

    def test_naive_timestamp_is_accepted(self, tmp_path, db):
        runs = write_runs(tmp_path / "runs.jsonl", 1, timestamp="2026-03-02T11:00:00")
        result = invoke(db, "ingest", str(runs), "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["accepted"] == 1
        assert data["rejected"] == []

    def test_missing_file(self, tmp_path, db):
        result = invoke(db, "ingest", str(tmp_path / "nope.jsonl"))
        assert result.exit_code != 0


class TestPatterns:
    def test_patterns_json(self, tmp_path, db):
        ingest_runs(db, tmp_path)
        result = invoke(db, "patterns", "format-check", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        by_type = {p["type"]: p for p in data}
        assert by_type["file_extension"]["data"] == {"extension": ".py"}
        assert by_type["file_extension"]["total_executions"] == 20

    def test_type_filter(self, tmp_path, db):
        ingest_runs(db, tmp_path)
        result = invoke(db, "patterns", "format-check", "--type", "hook_family", "--json")
        data = json.loads(result.stdout)
        assert [p["type"] for p in data] == ["hook_family"]

    def test_unknown_type(self, db):
        result = invoke(db, "patterns", "format-check", "--type", "bogus")
        assert result.exit_code == 1
        assert "Unknown pattern type" in result.stdout

    def test_table_output(self, tmp_path, db):
        ingest_runs(db, tmp_path)
        result = invoke(db, "patterns", "format-check")
        assert result.exit_code == 0
        assert "Patterns for format-check" in result.stdout

    def test_no_patterns(self, db):
        result = invoke(db, "patterns", "nothing")
        assert result.exit_code == 0
        assert "No patterns recorded" in result.stdout


class TestInsights:
    def test_generate_and_list(self, tmp_path, db):
        insight_id = generate_insight_id(db, tmp_path)
        result = invoke(db, "insights", "--status", "pending", "--json")
        data = json.loads(result.stdout)
        assert data["generated"] == []
        assert insight_id in {i["id"] for i in data["insights"]}

    def test_unknown_status(self, db):
        result = invoke(db, "insights", "--status", "bogus")
        assert result.exit_code == 1

    def test_apply_then_reapply(self, tmp_path, db):
        insight_id = generate_insight_id(db, tmp_path)
        result = invoke(db, "apply", insight_id, "--by", "tester", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["actions"]

        again = invoke(db, "apply", insight_id, "--json")
        assert again.exit_code == 1
        assert json.loads(again.stdout)["error"] == "Insight already applied"

    def test_rollback(self, tmp_path, db):
        insight_id = generate_insight_id(db, tmp_path)
        assert invoke(db, "rollback", insight_id, "--reason", "early").exit_code == 1
        invoke(db, "apply", insight_id)
        result = invoke(db, "rollback", insight_id, "--reason", "too aggressive", "--json")
        assert result.exit_code == 0, result.output
        actions = json.loads(result.stdout)["actions"]
        assert all(a["type"].startswith("rollback_") for a in actions)

    def test_apply_unknown(self, db):
        result = invoke(db, "apply", "missing")
        assert result.exit_code == 1
        assert "not found" in result.stdout


class TestReport:
    def test_report_json(self, tmp_path, db):
        ingest_runs(db, tmp_path)
        result = invoke(db, "report", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["hooks"]["format-check"]["total_executions"] == 20

    def test_empty_report(self, db):
        result = invoke(db, "report")
        assert result.exit_code == 0
        assert "No executions recorded yet" in result.stdout

    def test_metric(self, tmp_path, db):
        ingest_runs(db, tmp_path)
        result = invoke(db, "metric", "execution_time.format-check", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["samples"] == 20
        assert data["summary"]["name"] == "execution_time.format-check"

    def test_unknown_metric(self, db):
        result = invoke(db, "metric", "execution_time.nothing")
        assert result.exit_code == 1
        assert "No samples recorded" in result.stdout
