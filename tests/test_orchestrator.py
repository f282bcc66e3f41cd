# Copyright (c) Syntropy Systems
"""Tests for scenario orchestration."""

from __future__ import annotations

import json

import pytest

from settlebench.aggregate import aggregate_run
from settlebench.config import BenchConfig
from settlebench.errors import ActionFailure, BenchmarkFailed, PreconditionFailure
from settlebench.models.sample import DebugState, SettleStrategy
from settlebench.orchestrator import Orchestrator
from settlebench.scenarios import get_scenario
from settlebench.settle import SettleWaiter
from settlebench.stats import METRICS
from settlebench.storage import RunStore
from settlebench.targets.simulated import SimulatedTarget

RUN_ID = "2024-01-01T00-00"


class RecordingWaiter(SettleWaiter):
    """Waiter that settles immediately and remembers each timeout."""

    def __init__(self, strategy: SettleStrategy = SettleStrategy.PRIMARY) -> None:
        super().__init__()
        self.strategy = strategy
        self.timeouts: list[float | None] = []

    def wait(self, target, timeout_ms: float | None = None) -> SettleStrategy:
        self.timeouts.append(timeout_ms)
        return self.strategy


class TestEndToEnd:
    """Tests driving the simulated apps."""

    def test_two_apps_three_repetitions(self, fast_config: BenchConfig, sim_factory) -> None:
        """Test every trial is recorded and aggregates to count == repetitions."""
        store = RunStore(fast_config.results_path, RUN_ID)
        orchestrator = Orchestrator(
            fast_config,
            store,
            sim_factory,
            scenarios=[get_scenario("filter-change")],
        )

        report = orchestrator.run(["react", "solid"])

        assert len(report.trials) == 6
        assert report.failures == {}
        for app in ("react", "solid"):
            for i in range(3):
                assert store.record_path(app, "filter-change", i).is_file()

        result = aggregate_run(store)
        for metric in METRICS:
            rows = result.for_metric(metric)
            assert {m.app for m in rows} == {"react", "solid"}
            assert all(m.count == 3 for m in rows)

    def test_records_have_settle_strategy(self, fast_config: BenchConfig, sim_factory) -> None:
        """Test persisted samples carry marks, mutations and the settle strategy."""
        fast_config.repetitions = 1
        store = RunStore(fast_config.results_path, RUN_ID)
        orchestrator = Orchestrator(
            fast_config,
            store,
            sim_factory,
            scenarios=[get_scenario("filter-change")],
        )

        _ = orchestrator.run(["solid"])

        data = json.loads(store.record_path("solid", "filter-change", 0).read_text())
        assert data["settleStrategy"] in {"primary", "fallback", "forced"}
        assert data["dom"]["mutations"] > 0
        assert any(m["name"] == "region-EU:end" for m in data["marks"])


class TestTrialPhases:
    """Tests for a single trial."""

    def test_reset_act_settle_order(
        self,
        fast_config: BenchConfig,
        make_fake_target,
    ) -> None:
        """Test the target is reset and settled before the action runs."""
        target = make_fake_target(name="react")
        waiter = RecordingWaiter()
        store = RunStore(fast_config.results_path, RUN_ID)
        orchestrator = Orchestrator(fast_config, store, lambda app: target, waiter=waiter)

        result = orchestrator.run_trial(target, get_scenario("filter-change"), 0)

        assert target.calls == [
            ("reload",),
            ("click", "generate"),
            ("select", "filter-region", "EU"),
        ]
        assert waiter.timeouts == [None, fast_config.settle_timeout_ms]
        assert result.path == store.record_path("react", "filter-change", 0)
        assert result.low_confidence is False

    def test_long_idle_timeout_override(
        self,
        fast_config: BenchConfig,
        make_fake_target,
    ) -> None:
        """Test long-idle waits with the shorter of its override and the default."""
        target = make_fake_target(name="react")
        waiter = RecordingWaiter()
        orchestrator = Orchestrator(
            fast_config,
            RunStore(fast_config.results_path, RUN_ID),
            lambda app: target,
            waiter=waiter,
        )

        fast_config.settle_timeout_ms = 60000.0
        _ = orchestrator.run_trial(target, get_scenario("long-idle"), 0)
        fast_config.settle_timeout_ms = 3000.0
        _ = orchestrator.run_trial(target, get_scenario("long-idle"), 1)

        assert waiter.timeouts[1] == 10000
        assert waiter.timeouts[3] == 3000

    def test_intermediate_settles(self, fast_config: BenchConfig, make_fake_target) -> None:
        """Test repeated-sort settles between sorts and once at the end."""
        target = make_fake_target(name="react")
        waiter = RecordingWaiter()
        orchestrator = Orchestrator(
            fast_config,
            RunStore(fast_config.results_path, RUN_ID),
            lambda app: target,
            waiter=waiter,
        )

        _ = orchestrator.run_trial(target, get_scenario("repeated-sort"), 0)

        # reset + 4 between sorts + final
        assert len(waiter.timeouts) == 6
        assert target.calls.count(("click", "col-price")) == 5

    def test_forced_settle_is_low_confidence(
        self,
        fast_config: BenchConfig,
        fast_waiter,
        make_fake_target,
        make_fake_instrumentation,
    ) -> None:
        """Test a forced settle still records a sample, flagged low-confidence."""
        busy = DebugState(pending_count=1, settled=False, last_mutation_at=0, now=1)
        target = make_fake_target(
            name="react",
            instrumentation=make_fake_instrumentation(states=[busy], flag=False),
        )
        store = RunStore(fast_config.results_path, RUN_ID)
        orchestrator = Orchestrator(fast_config, store, lambda app: target, waiter=fast_waiter)

        result = orchestrator.run_trial(target, get_scenario("bulk-insert"), 0)

        assert result.low_confidence is True
        record = store.read("react", "bulk-insert", 0)
        assert record.sample.low_confidence is True
        assert record.sample.settle_strategy is SettleStrategy.FORCED

    def test_worst_strategy_wins(self, fast_config: BenchConfig, make_fake_target) -> None:
        """Test a fallback settle anywhere in the trial marks the sample."""
        target = make_fake_target(name="react")
        store = RunStore(fast_config.results_path, RUN_ID)
        orchestrator = Orchestrator(
            fast_config,
            store,
            lambda app: target,
            waiter=RecordingWaiter(SettleStrategy.FALLBACK),
        )

        _ = orchestrator.run_trial(target, get_scenario("bulk-remove"), 0)

        sample = store.read("react", "bulk-remove", 0).sample
        assert sample.settle_strategy is SettleStrategy.FALLBACK
        assert sample.low_confidence is False


class TestFailures:
    """Tests for precondition and action failures."""

    def test_missing_controls(self, fast_config: BenchConfig, fast_monitor_factory) -> None:
        """Test a target lacking controls fails before any trial."""
        store = RunStore(fast_config.results_path, RUN_ID)

        def factory(app: str) -> SimulatedTarget:
            return SimulatedTarget(
                app,
                monitor_factory=fast_monitor_factory,
                controls=("generate", "col-price"),
            )

        orchestrator = Orchestrator(fast_config, store, factory)

        with pytest.raises(PreconditionFailure) as exc_info:
            _ = orchestrator.run(["react"])

        assert "filter-region" in exc_info.value.missing
        assert "generate" not in exc_info.value.missing
        assert not store.run_dir.exists()

    def test_missing_instrumentation(self, fast_config: BenchConfig, make_fake_target) -> None:
        """Test a target without instrumentation fails preconditions."""
        target = make_fake_target(name="react")
        target.instrumentation = None
        orchestrator = Orchestrator(
            fast_config,
            RunStore(fast_config.results_path, RUN_ID),
            lambda app: target,
        )

        with pytest.raises(PreconditionFailure, match="instrumentation"):
            orchestrator.check_preconditions(target)

    def test_failure_writes_diagnostics_and_aborts(
        self,
        fast_config: BenchConfig,
        make_fake_target,
    ) -> None:
        """Test a failing action leaves a debug bundle and stops the run."""
        opened: list[str] = []

        def factory(app: str):
            opened.append(app)
            target = make_fake_target(name=app)
            target.select = _raise_select
            return target

        store = RunStore(fast_config.results_path, RUN_ID)
        orchestrator = Orchestrator(fast_config, store, factory, waiter=RecordingWaiter())

        with pytest.raises(ActionFailure) as exc_info:
            _ = orchestrator.run(["react", "solid"])

        error = exc_info.value
        assert (error.app, error.scenario, error.run_index, error.phase) == (
            "react",
            "filter-change",
            0,
            "act",
        )
        assert isinstance(error.__cause__, LookupError)
        assert opened == ["react"]
        debug_files = sorted(p.name for p in store.debug_dir.iterdir())
        assert debug_files == [
            "react-filter-change-0.html",
            "react-filter-change-0.json",
            "react-filter-change-0.png",
        ]

    def test_isolated_apps_continue(self, fast_config: BenchConfig, make_fake_target) -> None:
        """Test isolation runs the remaining apps and reports failures at the end."""
        fast_config.isolate_apps = True

        def factory(app: str):
            target = make_fake_target(name=app)
            if app == "react":
                target.select = _raise_select
            return target

        store = RunStore(fast_config.results_path, RUN_ID)
        orchestrator = Orchestrator(
            fast_config,
            store,
            factory,
            scenarios=[get_scenario("filter-change")],
            waiter=RecordingWaiter(),
        )

        with pytest.raises(BenchmarkFailed) as exc_info:
            _ = orchestrator.run(["react", "solid"])

        error = exc_info.value
        assert list(error.failures) == ["react"]
        assert isinstance(error.failures["react"], ActionFailure)
        assert error.report is not None
        assert [t.app for t in error.report.trials] == ["solid"] * 3
        assert store.record_path("solid", "filter-change", 2).is_file()

    def test_duplicate_record_fails_trial(
        self,
        fast_config: BenchConfig,
        make_fake_target,
    ) -> None:
        """Test re-running into an existing run id fails during persist."""
        target = make_fake_target(name="react")
        store = RunStore(fast_config.results_path, RUN_ID)
        orchestrator = Orchestrator(fast_config, store, lambda app: target, waiter=RecordingWaiter())
        scenario = get_scenario("bulk-insert")
        _ = orchestrator.run_trial(target, scenario, 0)

        with pytest.raises(ActionFailure) as exc_info:
            _ = orchestrator.run_trial(target, scenario, 0)

        assert exc_info.value.phase == "persist"


def _raise_select(control: str, value: str) -> None:
    msg = f"No control '{control}'"
    raise LookupError(msg)

