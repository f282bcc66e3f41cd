# Copyright (c) Syntropy Systems
"""Exception taxonomy for settlebench."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from settlebench.orchestrator import BenchmarkReport


class SettlebenchError(Exception):
    """Base class for all settlebench errors."""


class PreconditionFailure(SettlebenchError):
    """A target is missing part of its required control/query surface."""

    app: str
    missing: list[str]

    def __init__(self, app: str, missing: list[str]) -> None:
        self.app = app
        self.missing = missing
        super().__init__(
            f"Target '{app}' is missing required controls: {', '.join(missing)}"
        )


class SettleTimeout(SettlebenchError):
    """A settle strategy ran out of time."""

    strategy: str
    timeout_ms: float

    def __init__(self, strategy: str, timeout_ms: float) -> None:
        self.strategy = strategy
        self.timeout_ms = timeout_ms
        super().__init__(f"Timed out after {timeout_ms:.0f}ms ({strategy} settle)")


class ActionFailure(SettlebenchError):
    """A trial failed while driving or reading the target."""

    app: str
    scenario: str
    run_index: int
    phase: str
    debug_dir: Path | None

    def __init__(  # noqa: PLR0913
        self,
        app: str,
        scenario: str,
        run_index: int,
        phase: str,
        debug_dir: Path | None = None,
    ) -> None:
        self.app = app
        self.scenario = scenario
        self.run_index = run_index
        self.phase = phase
        self.debug_dir = debug_dir
        super().__init__(
            f"Failed {app} {scenario} run {run_index + 1} during {phase}"
        )


class AggregationGap(SettlebenchError):
    """A result group could not be aggregated."""


class RunNotFoundError(SettlebenchError):
    """No run identifier could be resolved."""


class RecordExistsError(SettlebenchError):
    """A run record was about to be overwritten."""


class MonitorDetachedError(SettlebenchError):
    """A message was sent to a monitor that is not attached."""


class BenchmarkFailed(SettlebenchError):
    """One or more apps failed while running with per-app isolation."""

    failures: dict[str, BaseException]
    report: BenchmarkReport | None

    def __init__(
        self,
        failures: dict[str, BaseException],
        report: BenchmarkReport | None = None,
    ) -> None:
        self.failures = failures
        self.report = report
        names = ", ".join(sorted(failures))
        super().__init__(f"{len(failures)} app(s) failed: {names}")
