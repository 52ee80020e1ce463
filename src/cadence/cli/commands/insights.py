"""Insight commands: list, generate, apply and roll back insights."""

from __future__ import annotations

from typing import Annotated

import typer

from cadence.core.errors import OperationResult
from cadence.learning.insights import Insight, InsightStatus

from ..helpers import get_engine
from ..output import (
    StatusColors,
    console,
    create_insights_table,
    output_error,
    print_json,
)


def _render_insights(insights: list[Insight], title: str) -> None:
    table = create_insights_table(title=title)
    for insight in insights:
        summary = insight.summary()
        status_color = StatusColors.get_status_color(summary["status"])
        priority_color = StatusColors.get_priority_color(summary["priority"])
        table.add_row(
            insight.id[:8],
            summary["type"],
            summary["hook"] or "-",
            f"[{priority_color}]{summary['priority']}[/{priority_color}]",
            summary["confidence"],
            f"[{status_color}]{summary['status']}[/{status_color}]",
            summary["effectiveness"],
        )
    console.print(table)


def insights(
    generate: bool = typer.Option(
        False, "--generate", "-g", help="Analyze the store and record new insights first"
    ),
    status: Annotated[
        str | None,
        typer.Option("--status", "-s", help="Filter by status (pending, applied, ...)"),
    ] = None,
    limit: Annotated[int, typer.Option(help="Max insights to show")] = 20,
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON for machine parsing"
    ),
) -> None:
    """List recent insights, optionally generating new ones.

    Examples:
        cadence insights
        cadence insights --generate
        cadence insights --status pending --json
    """
    status_filter: InsightStatus | None = None
    if status is not None:
        try:
            status_filter = InsightStatus(status)
        except ValueError:
            output_error(
                f"Unknown status: {status}",
                hints=[f"Valid statuses: {', '.join(s.value for s in InsightStatus)}"],
                json_output=json_output,
            )
            raise typer.Exit(1) from None

    engine = get_engine(console)
    generated: list[Insight] = engine.generate_insights() if generate else []
    recent = engine.gateway.query_recent_insights(limit, status_filter)

    if json_output:
        print_json({
            "generated": [i.id for i in generated],
            "insights": [i.to_dict() for i in recent],
        })
        return

    if generate:
        console.print(f"Generated [green]{len(generated)}[/green] new insight(s)")
    if not recent:
        console.print("[dim]No insights recorded.[/dim]")
        return
    _render_insights(recent, title="Recent Insights")


def _report_transition(result: OperationResult, verb: str, json_output: bool) -> None:
    if json_output:
        print_json(result.to_dict())
    elif result.success:
        console.print(f"[green]Insight {verb}.[/green]")
        for action in result.actions:
            console.print(f"  - {action['type']}")
    else:
        output_error(result.error or f"Insight could not be {verb}")
    if not result.success:
        raise typer.Exit(1)


def apply(
    insight_id: Annotated[str, typer.Argument(help="Insight ID")],
    applied_by: Annotated[str, typer.Option("--by", help="Who applied the insight")] = "cli",
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON for machine parsing"
    ),
) -> None:
    """Apply a pending insight and print the actions it emits."""
    engine = get_engine(console)
    _report_transition(engine.apply_insight(insight_id, applied_by), "applied", json_output)


def rollback(
    insight_id: Annotated[str, typer.Argument(help="Insight ID")],
    reason: Annotated[str, typer.Option("--reason", "-r", help="Why the insight is reverted")],
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON for machine parsing"
    ),
) -> None:
    """Roll back an applied insight and print the reversing actions."""
    engine = get_engine(console)
    _report_transition(engine.rollback_insight(insight_id, reason), "rolled back", json_output)
