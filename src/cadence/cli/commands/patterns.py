"""Patterns command: inspect learned statistics for one hook."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

import typer

from cadence.learning.patterns import PatternType

from ..helpers import get_engine
from ..output import (
    console,
    create_patterns_table,
    format_ms,
    format_rate,
    output_error,
    print_json,
)


def patterns(
    hook: Annotated[str, typer.Argument(help="Hook name")],
    pattern_type: Annotated[
        str | None,
        typer.Option("--type", "-t", help="Only show one pattern type (e.g. file_extension)"),
    ] = None,
    stale_only: bool = typer.Option(False, "--stale", help="Only show stale patterns"),
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON for machine parsing"
    ),
) -> None:
    """Show learned patterns for a hook.

    Examples:
        cadence patterns format-check
        cadence patterns format-check --type file_extension
        cadence patterns format-check --stale --json
    """
    if pattern_type is not None and pattern_type not in {t.value for t in PatternType}:
        output_error(
            f"Unknown pattern type: {pattern_type}",
            hints=[f"Valid types: {', '.join(t.value for t in PatternType)}"],
            json_output=json_output,
        )
        raise typer.Exit(1)

    engine = get_engine(console)
    now = datetime.now(UTC)
    models = (
        engine.stale_patterns(hook, now)
        if stale_only
        else engine.gateway.query_patterns_by_hook(hook)
    )
    if pattern_type is not None:
        models = [m for m in models if m.pattern_type.value == pattern_type]

    if json_output:
        print_json([m.summary(now) for m in models])
        return

    if not models:
        console.print(f"[dim]No patterns recorded for hook '{hook}'.[/dim]")
        return

    table = create_patterns_table(title=f"Patterns for {hook}")
    for m in sorted(models, key=lambda m: (m.pattern_type.value, -m.total_count)):
        table.add_row(
            m.pattern_type.value,
            m.pattern_key,
            str(m.total_count),
            format_rate(m.success_rate),
            str(m.block_count),
            format_ms(m.mean_execution_ms),
            f"{m.confidence:.2f}",
            "[yellow]yes[/yellow]" if m.is_stale(now) else "",
        )
    console.print(table)
