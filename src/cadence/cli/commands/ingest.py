"""Ingest command: feed hook-runner telemetry into the learning store."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer

from cadence.learning.records import ExecutionRecord

from ..helpers import get_engine
from ..output import console, output_error, print_json


def ingest(
    file: Annotated[
        Path,
        typer.Argument(
            exists=True,
            dir_okay=False,
            readable=True,
            help="JSON-lines file, one execution record per line",
        ),
    ],
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON for machine parsing"
    ),
) -> None:
    """Ingest execution records from a JSON-lines file.

    Each line is an object with at least ``hook_name`` and ``duration_ms``.
    Invalid lines are reported and skipped.

    Examples:
        cadence ingest runs.jsonl
        cadence --db ./learning.db ingest runs.jsonl --json
    """
    engine = get_engine(console)
    accepted = 0
    outliers = 0
    rejected: list[dict[str, Any]] = []

    with open(file, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                record = ExecutionRecord.from_dict(json.loads(line))
            except (json.JSONDecodeError, ValueError, TypeError) as e:
                rejected.append({"line": line_no, "errors": [str(e)]})
                continue

            result = engine.ingest(record)
            if not result.accepted:
                rejected.append({"line": line_no, "errors": result.validation.errors})
                continue
            accepted += 1
            if result.outlier is not None and result.outlier.is_outlier:
                outliers += 1

    if json_output:
        print_json({"accepted": accepted, "outliers": outliers, "rejected": rejected})
        return

    console.print(f"Ingested [green]{accepted}[/green] record(s)")
    if outliers:
        console.print(f"  Outliers flagged: [yellow]{outliers}[/yellow]")
    for item in rejected:
        output_error(
            f"line {item['line']}: {'; '.join(item['errors'])}", severity="warning"
        )
