# cadence/cli/commands: Command modules for the Cadence CLI.
#
# Each module in this package provides one or more CLI commands.

from .ingest import ingest
from .insights import apply, insights, rollback
from .patterns import patterns
from .report import metric, report

__all__ = [
    # ingest.py
    "ingest",
    # patterns.py
    "patterns",
    # insights.py
    "insights",
    "apply",
    "rollback",
    # report.py
    "report",
    "metric",
]
