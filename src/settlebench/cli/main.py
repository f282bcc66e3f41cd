# Copyright (c) Syntropy Systems
"""Main CLI entry point for settlebench."""

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from settlebench.cli.aggregate import aggregate
from settlebench.cli.run import run
from settlebench.cli.scenarios import scenarios

app = typer.Typer(
    name="settlebench",
    help=(
        "Settle-aware UI benchmarks. Run seeded scenarios against each app, "
        "then aggregate medians and p95s."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging",
    ),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# Register commands
_ = app.command()(run)
_ = app.command()(aggregate)
_ = app.command()(scenarios)


if __name__ == "__main__":
    app()
