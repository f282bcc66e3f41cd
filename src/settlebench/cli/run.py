# Copyright (c) Syntropy Systems
"""settlebench run command."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, ContextManager, Optional

import typer
from rich.console import Console
from rich.table import Table

from settlebench.config import BenchConfig, load_config
from settlebench.errors import BenchmarkFailed, SettlebenchError
from settlebench.orchestrator import BenchmarkReport, Orchestrator
from settlebench.scenarios import select_scenarios
from settlebench.storage import RunStore, make_run_id
from settlebench.targets.simulated import SimulatedTarget

if TYPE_CHECKING:
    from settlebench.orchestrator import TargetFactory
    from settlebench.targets.base import Target

console = Console()

APPS = ("react", "solid")


def _target_factory(config: BenchConfig, simulate: bool) -> TargetFactory:  # noqa: FBT001
    if simulate:

        def open_simulated(app: str) -> ContextManager[Target]:
            return SimulatedTarget(app, seed=config.seed, dataset_size=config.dataset_size)

        return open_simulated

    from settlebench.targets.browser import open_browser_target  # noqa: PLC0415

    def open_browser(app: str) -> ContextManager[Target]:
        return open_browser_target(app, config)

    return open_browser


def _print_report(report: BenchmarkReport) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("App", style="cyan")
    table.add_column("Scenario")
    table.add_column("Trials", justify="right")
    table.add_column("Low confidence", justify="right")

    counts: dict[tuple[str, str], list[int]] = {}
    for trial in report.trials:
        entry = counts.setdefault((trial.app, trial.scenario), [0, 0])
        entry[0] += 1
        entry[1] += int(trial.low_confidence)

    for (app, scenario), (total, low) in counts.items():
        low_str = f"[yellow]{low}[/yellow]" if low else "0"
        table.add_row(app, scenario, str(total), low_str)

    console.print(table)


def run(
    app: Optional[str] = typer.Argument(
        None,
        help="App to benchmark (react or solid). Runs both when omitted.",
    ),
    repetitions: Optional[int] = typer.Option(
        None,
        "--repetitions", "-n",
        help="Trials per scenario",
    ),
    run_id: Optional[str] = typer.Option(
        None,
        "--run-id",
        help="Run identifier (defaults to the current UTC minute)",
    ),
    results_dir: Optional[Path] = typer.Option(
        None,
        "--results-dir", "-o",
        help="Results directory",
    ),
    scenario: Optional[list[str]] = typer.Option(
        None,
        "--scenario", "-s",
        help="Only run this scenario id (repeatable)",
    ),
    simulate: bool = typer.Option(
        False,
        "--simulate",
        help="Benchmark the in-process simulated apps instead of a browser",
    ),
    isolate: Optional[bool] = typer.Option(
        None,
        "--isolate/--fail-fast",
        help="Continue with the next app when one app fails",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to settlebench.yaml",
    ),
) -> None:
    """Run the benchmark scenarios against one or both apps.

    Examples:
        settlebench run
        settlebench run solid --repetitions 1
        settlebench run --simulate --isolate

    """
    if app is not None and app not in APPS:
        console.print(f"[red]Unknown app '{app}'. Choose one of: {', '.join(APPS)}[/red]")
        raise typer.Exit(1)

    config = load_config(config_path)
    if repetitions is not None:
        config.repetitions = repetitions
    if results_dir is not None:
        config.results_dir = str(results_dir)
    if isolate is not None:
        config.isolate_apps = isolate

    try:
        scenarios = select_scenarios(scenario)
    except KeyError as e:
        console.print(f"[red]Error:[/red] {e.args[0]}")
        raise typer.Exit(1) from e

    store = RunStore(config.results_path, run_id or make_run_id())
    orchestrator = Orchestrator(
        config,
        store,
        _target_factory(config, simulate),
        scenarios=scenarios,
    )

    apps = [app] if app else list(APPS)
    console.print(
        f"[bold]Run {store.run_id}[/bold]: {', '.join(apps)} x "
        f"{len(scenarios)} scenario(s) x {config.repetitions} run(s)"
    )

    try:
        report = orchestrator.run(apps)
    except BenchmarkFailed as e:
        if e.report is not None:
            _print_report(e.report)
        for failed_app, error in e.failures.items():
            console.print(f"[red]✗ {failed_app}:[/red] {error}")
        raise typer.Exit(1) from e
    except SettlebenchError as e:
        console.print(f"[red]Error:[/red] {e}")
        if e.__cause__ is not None:
            console.print(f"  [dim]caused by: {e.__cause__}[/dim]")
        raise typer.Exit(1) from e

    _print_report(report)
    console.print(
        f"[green]✓ Wrote {len(report.trials)} run record(s) to {store.run_dir}[/green]"
    )
