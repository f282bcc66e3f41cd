# Copyright (c) Syntropy Systems
"""Scenarios command - list the scenario library."""

from rich.console import Console
from rich.table import Table

from settlebench.scenarios import SCENARIOS, SETTLE_TIMEOUT_OVERRIDES_MS

console = Console()


def scenarios() -> None:
    """List the scenarios every app is measured with."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Description")
    table.add_column("Settle timeout", style="dim")

    for scenario in SCENARIOS:
        override = SETTLE_TIMEOUT_OVERRIDES_MS.get(scenario.id)
        table.add_row(
            scenario.id,
            scenario.description,
            f"{override / 1000:.0f}s" if override is not None else "default",
        )

    console.print(table)
