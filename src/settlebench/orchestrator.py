# Copyright (c) Syntropy Systems
"""Scenario orchestration.

Drives each app through every scenario ``repetitions`` times, strictly
one trial at a time. A trial walks reset -> act -> await_settle ->
collect -> persist. Any failure captures a debug bundle and raises
``ActionFailure``, which by default aborts the whole run. With
``isolate_apps`` the failure is recorded against its app and the next
app still runs; ``BenchmarkFailed`` is raised once all apps are done.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, ContextManager

from settlebench.diagnostics import capture_diagnostics
from settlebench.errors import ActionFailure, BenchmarkFailed, PreconditionFailure
from settlebench.models.sample import RunRecord, SettleStrategy
from settlebench.scenarios import (
    SCENARIOS,
    SETTLE_TIMEOUT_OVERRIDES_MS,
    Scenario,
    ScenarioContext,
)
from settlebench.settle import SettleWaiter
from settlebench.targets.base import missing_surface

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from settlebench.config import BenchConfig
    from settlebench.storage import RunStore
    from settlebench.targets.base import Instrumentation, Target

logger = logging.getLogger(__name__)

TargetFactory = Callable[[str], ContextManager["Target"]]


class TrialPhase(str, Enum):
    """Where a trial is (or was when it failed)."""

    INIT = "init"
    RESET = "reset"
    ACT = "act"
    AWAIT_SETTLE = "await_settle"
    COLLECT = "collect"
    PERSIST = "persist"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TrialResult:
    """Outcome of one successful trial."""

    app: str
    scenario: str
    run_index: int
    path: Path
    settle_strategy: SettleStrategy

    @property
    def low_confidence(self) -> bool:
        """Return whether settle had to be forced."""
        return self.settle_strategy is SettleStrategy.FORCED


@dataclass
class AppReport:
    """Trials completed for one app, and its failure if any."""

    app: str
    trials: list[TrialResult] = field(default_factory=list)
    error: BaseException | None = None


@dataclass
class BenchmarkReport:
    """Everything a benchmark run produced."""

    run_id: str
    apps: list[AppReport] = field(default_factory=list)

    @property
    def trials(self) -> list[TrialResult]:
        """Return all completed trials."""
        return [t for app in self.apps for t in app.trials]

    @property
    def failures(self) -> dict[str, BaseException]:
        """Return the failure of every app that failed."""
        return {a.app: a.error for a in self.apps if a.error is not None}


def _worst(strategies: list[SettleStrategy]) -> SettleStrategy:
    return max(strategies, key=lambda s: s.rank, default=SettleStrategy.PRIMARY)


class Orchestrator:
    """Runs (app x scenario x repetition) trials against targets."""

    config: BenchConfig
    store: RunStore
    scenarios: tuple[Scenario, ...]
    waiter: SettleWaiter

    def __init__(
        self,
        config: BenchConfig,
        store: RunStore,
        target_factory: TargetFactory,
        scenarios: Iterable[Scenario] = SCENARIOS,
        waiter: SettleWaiter | None = None,
    ) -> None:
        """Initialize an orchestrator.

        Args:
            config: Benchmark configuration
            store: Where run records and debug bundles go
            target_factory: Opens a loaded target for an app name
            scenarios: Scenarios to run, in order
            waiter: Settle waiter; built from config when omitted

        """
        self.config = config
        self.store = store
        self._target_factory = target_factory
        self.scenarios = tuple(scenarios)
        self.waiter = waiter or SettleWaiter.from_config(config)

    def run(self, apps: Iterable[str]) -> BenchmarkReport:
        """Run every scenario for every app, one after another."""
        report = BenchmarkReport(run_id=self.store.run_id)

        for app in apps:
            app_report = AppReport(app=app)
            report.apps.append(app_report)
            if not self.config.isolate_apps:
                self.run_app(app, app_report)
                continue
            try:
                self.run_app(app, app_report)
            except Exception as exc:  # noqa: BLE001
                logger.error("App %s failed, continuing with next app: %s", app, exc)
                app_report.error = exc

        if report.failures:
            raise BenchmarkFailed(report.failures, report)
        return report

    def run_app(self, app: str, report: AppReport | None = None) -> AppReport:
        """Run all scenarios for one app."""
        if report is None:
            report = AppReport(app=app)

        with self._target_factory(app) as target:
            self.check_preconditions(target)
            logger.info("All required controls found for %s", app)

            for scenario in self.scenarios:
                logger.info("Running %s %s...", app, scenario.id)
                for run_index in range(self.config.repetitions):
                    logger.info(
                        "  %s %s run %d/%d",
                        app,
                        scenario.id,
                        run_index + 1,
                        self.config.repetitions,
                    )
                    report.trials.append(self.run_trial(target, scenario, run_index))
                logger.info("Completed %s %s", app, scenario.id)

        return report

    def check_preconditions(self, target: Target) -> None:
        """Fail fast when the target lacks part of its control surface."""
        missing = missing_surface(target)
        if missing:
            raise PreconditionFailure(target.name, missing)

    def run_trial(self, target: Target, scenario: Scenario, run_index: int) -> TrialResult:
        """Run one trial and persist its record."""
        strategies: list[SettleStrategy] = []
        override = SETTLE_TIMEOUT_OVERRIDES_MS.get(scenario.id)
        timeout = (
            min(override, self.config.settle_timeout_ms)
            if override is not None
            else self.config.settle_timeout_ms
        )

        def settle(timeout_ms: float | None = None) -> SettleStrategy:
            strategy = self.waiter.wait(target, timeout_ms)
            strategies.append(strategy)
            return strategy

        phase = TrialPhase.INIT
        try:
            phase = TrialPhase.RESET
            target.reload()
            target.click("generate")
            _ = settle()

            phase = TrialPhase.ACT
            scenario.run(ScenarioContext(target=target, settle=settle))

            phase = TrialPhase.AWAIT_SETTLE
            _ = settle(timeout)

            phase = TrialPhase.COLLECT
            worst = _worst(strategies)
            sample = _require_instrumentation(target).collect().model_copy(
                update={
                    "settle_strategy": worst,
                    "low_confidence": worst is SettleStrategy.FORCED,
                }
            )

            phase = TrialPhase.PERSIST
            path = self.store.write(
                RunRecord(
                    app=target.name,
                    scenario=scenario.id,
                    run_index=run_index,
                    sample=sample,
                )
            )
        except Exception as exc:
            logger.error(
                "Failed %s %s run %d during %s: %s",
                target.name,
                scenario.id,
                run_index + 1,
                phase.value,
                exc,
            )
            _ = capture_diagnostics(
                target,
                self.store.debug_dir,
                f"{target.name}-{scenario.id}-{run_index}",
            )
            raise ActionFailure(
                target.name,
                scenario.id,
                run_index,
                phase.value,
                self.store.debug_dir,
            ) from exc

        if worst is SettleStrategy.FORCED:
            logger.warning(
                "%s %s run %d used a forced settle; sample is low-confidence",
                target.name,
                scenario.id,
                run_index + 1,
            )
        return TrialResult(
            app=target.name,
            scenario=scenario.id,
            run_index=run_index,
            path=path,
            settle_strategy=worst,
        )


def _require_instrumentation(target: Target) -> Instrumentation:
    instrumentation = target.instrumentation
    if instrumentation is None:
        msg = f"Target '{target.name}' has no instrumentation"
        raise RuntimeError(msg)
    return instrumentation
