"""Report and metric commands: read-only summaries of the learning store."""

from __future__ import annotations

from typing import Annotated

import typer

from ..helpers import get_engine
from ..output import (
    console,
    create_hooks_table,
    create_simple_table,
    format_ms,
    format_rate,
    output_error,
    print_json,
)


def report(
    top: Annotated[int, typer.Option(help="Number of top blocked patterns")] = 10,
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON for report generators"
    ),
) -> None:
    """Summarize hook effectiveness, blocked patterns and recent insights.

    Examples:
        cadence report
        cadence report --json > report.json
    """
    engine = get_engine(console)
    data = engine.export_report(top_n=top)

    if json_output:
        print_json(data)
        return

    if not data["hooks"]:
        console.print("[dim]No executions recorded yet.[/dim]")
        return

    hooks_table = create_hooks_table(title="Hook Effectiveness")
    for name, hook in data["hooks"].items():
        hooks_table.add_row(
            name,
            str(hook["total_executions"]),
            format_rate(hook["success_rate"]),
            f"{hook['block_rate'] * 100:.1f}%",
            format_ms(hook["mean_execution_ms"]),
            f"{hook['effectiveness']:.2f}",
            str(hook["stale_patterns"]),
        )
    console.print(hooks_table)

    if data["top_blocked_patterns"]:
        console.print("\n[bold cyan]Top Blocked Patterns[/bold cyan]")
        for p in data["top_blocked_patterns"]:
            console.print(
                f"  {p['hook_name']} {p['type']}={p['data']} "
                f"[yellow]{p['block_count']} blocked[/yellow] "
                f"(confidence {p['confidence']:.2f})",
                highlight=False,
            )

    if data["recent_insights"]:
        console.print("\n[bold cyan]Recent Insights[/bold cyan]")
        for i in data["recent_insights"]:
            console.print(
                f"  [{i['priority']}] {i['type']} {i['hook'] or ''} - {i['status']}",
                markup=False,
            )


def metric(
    name: Annotated[str, typer.Argument(help="Metric name, e.g. execution_time.format-check")],
    window: Annotated[
        int | None, typer.Option(help="Number of recent samples to aggregate")
    ] = None,
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON for machine parsing"
    ),
) -> None:
    """Aggregate a metric's recent samples and check the newest for anomalies."""
    engine = get_engine(console)
    result = engine.aggregate_metric(name, window)
    if result is None:
        output_error(f"No samples recorded for metric '{name}'", json_output=json_output)
        raise typer.Exit(1)

    if json_output:
        print_json(result.to_dict())
        return

    summary = result.summary
    table = create_simple_table()
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Metric", summary.name)
    table.add_row("Samples", str(result.samples))
    table.add_row("Mean", summary.format_value())
    if summary.min is not None and summary.max is not None:
        table.add_row("Range", f"{summary.min:.2f} - {summary.max:.2f}")
    if summary.std_dev is not None:
        table.add_row("Std dev", f"{summary.std_dev:.2f}")
    anomaly = result.anomaly
    if anomaly.is_anomaly:
        table.add_row("Anomaly", f"[red]{anomaly.reason}[/red]")
    else:
        table.add_row("Anomaly", f"[green]none[/green] {anomaly.reason or ''}".rstrip())
    console.print(table)
