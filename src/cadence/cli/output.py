"""Rich output formatting for the Cadence CLI.

Centralizes the console instance, status colors and table factories so
every command renders patterns and insights the same way.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from rich.console import Console
from rich.table import Table

from cadence.learning.insights import InsightPriority, InsightStatus

# =============================================================================
# Shared console instance
# =============================================================================

console = Console()


# =============================================================================
# Color schemes
# =============================================================================


class StatusColors:
    """Color mappings for insight status and priority values."""

    INSIGHT_STATUS: dict[str, str] = {
        InsightStatus.PENDING.value: "yellow",
        InsightStatus.APPLIED.value: "blue",
        InsightStatus.VALIDATED.value: "green",
        InsightStatus.ROLLED_BACK.value: "magenta",
        InsightStatus.EXPIRED.value: "dim",
    }

    PRIORITY: dict[str, str] = {
        InsightPriority.LOW.value: "dim",
        InsightPriority.MEDIUM.value: "white",
        InsightPriority.HIGH.value: "yellow",
        InsightPriority.CRITICAL.value: "red",
    }

    @classmethod
    def get_status_color(cls, status: str) -> str:
        return cls.INSIGHT_STATUS.get(status, "white")

    @classmethod
    def get_priority_color(cls, priority: str) -> str:
        return cls.PRIORITY.get(priority, "white")


def format_rate(value: float) -> str:
    """Format a 0-1 rate as a colored percentage."""
    color = "green" if value >= 0.8 else "yellow" if value >= 0.5 else "red"
    return f"[{color}]{value * 100:.1f}%[/{color}]"


def format_ms(value: float | None) -> str:
    if value is None:
        return "N/A"
    if value >= 1000:
        return f"{value / 1000:.2f}s"
    return f"{value:.0f}ms"


# =============================================================================
# Table factories
# =============================================================================


def create_patterns_table(title: str = "Learned Patterns") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Type", style="cyan")
    table.add_column("Key", no_wrap=False)
    table.add_column("Runs", justify="right", width=6)
    table.add_column("Success", justify="right", width=9)
    table.add_column("Blocked", justify="right", width=8)
    table.add_column("Mean", justify="right", width=9)
    table.add_column("Confidence", justify="right", width=11)
    table.add_column("Stale", justify="center", width=6)
    return table


def create_insights_table(title: str = "Insights") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("ID", style="dim", width=10)
    table.add_column("Type", style="cyan")
    table.add_column("Hook")
    table.add_column("Priority", width=9)
    table.add_column("Confidence", justify="right", width=11)
    table.add_column("Status", width=12)
    table.add_column("Effectiveness", justify="right", width=13)
    return table


def create_hooks_table(title: str = "Hooks") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Hook", style="cyan")
    table.add_column("Runs", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Blocked", justify="right")
    table.add_column("Mean", justify="right")
    table.add_column("Effectiveness", justify="right")
    table.add_column("Stale", justify="right")
    return table


def create_simple_table(show_header: bool = False) -> Table:
    """Key-value table without box styling."""
    return Table(show_header=show_header, box=None)


# =============================================================================
# JSON and error output
# =============================================================================


def print_json(data: Any) -> None:
    """Print JSON without Rich markup or wrapping."""
    console.print(
        json.dumps(data, indent=2, default=str),
        soft_wrap=True,
        markup=False,
        highlight=False,
    )


def output_error(
    message: str,
    *,
    hints: list[str] | None = None,
    severity: Literal["error", "warning"] = "error",
    json_output: bool = False,
) -> None:
    """Output a formatted error or warning, or a JSON error object."""
    if json_output:
        result: dict[str, Any] = {"success": False, "message": message}
        if hints:
            result["hints"] = hints
        print_json(result)
        return

    color = "red" if severity == "error" else "yellow"
    label = "Error" if severity == "error" else "Warning"
    console.print(f"[{color}]{label}:[/{color}] {message}")
    if hints:
        console.print()
        console.print("[dim]Hints:[/dim]")
        for hint in hints:
            console.print(f"  - {hint}")
