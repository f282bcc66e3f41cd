# Copyright (c) Syntropy Systems
"""Aggregate command - summarize a run's records into CSV tables."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from settlebench.aggregate import aggregate_run, resolve_run_id, write_summary
from settlebench.config import load_config
from settlebench.errors import RunNotFoundError
from settlebench.stats import METRIC_UNITS
from settlebench.storage import RunStore

console = Console()


def aggregate(
    run: Optional[str] = typer.Option(
        None,
        "--run", "-r",
        help="Run identifier (defaults to the latest run)",
    ),
    results_dir: Optional[Path] = typer.Option(
        None,
        "--results-dir", "-o",
        help="Results directory",
    ),
    expected: Optional[int] = typer.Option(
        None,
        "--expected", "-e",
        help="Expected runs per scenario (defaults to configured repetitions)",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to settlebench.yaml",
    ),
) -> None:
    """Compute medians and p95s for a run and write summary tables.

    Examples:
        settlebench aggregate
        settlebench aggregate --run=2024-01-01T00-00

    """
    config = load_config(config_path)
    base = results_dir if results_dir is not None else config.results_path

    try:
        run_id = resolve_run_id(base, run)
    except RunNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    store = RunStore(base, run_id)
    if expected is None:
        expected = config.repetitions
    result = aggregate_run(store, expected=expected)
    written = write_summary(result, store.summary_dir)

    table = Table(show_header=True, header_style="bold", title=f"Run {run_id}")
    table.add_column("App", style="cyan")
    table.add_column("Scenario")
    table.add_column("Metric", style="dim")
    table.add_column("Median", justify="right")
    table.add_column("p95", justify="right")
    table.add_column("n", justify="right")

    for m in result.metrics:
        unit = METRIC_UNITS.get(m.metric, "")
        table.add_row(
            m.app,
            m.scenario,
            m.metric,
            f"{m.median:.2f} {unit}",
            f"{m.p95:.2f} {unit}",
            str(m.count),
        )

    if result.metrics:
        console.print(table)
    else:
        console.print("[yellow]No samples to aggregate[/yellow]")

    for (app, scenario), count in result.group_counts().items():
        style = "yellow" if count < expected else "dim"
        console.print(f"[{style}]{app}/{scenario}: {count}/{expected} runs[/{style}]")

    for group in result.skipped:
        console.print(f"[yellow]Skipped {group}: no readable records[/yellow]")

    console.print(
        f"[green]Aggregated {len(result.raw_rows)} run(s) into "
        f"{len(written)} table(s) in {store.summary_dir}[/green]"
    )
