# Copyright (c) Syntropy Systems
"""Pytest fixtures for settlebench tests."""

from __future__ import annotations

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from settlebench.config import BenchConfig
from settlebench.models.sample import DebugState, PerfSample
from settlebench.monitor import SettleMonitor
from settlebench.settle import SettleWaiter
from settlebench.targets.base import REQUIRED_CONTROLS
from settlebench.targets.simulated import SimulatedTarget


class FakeClock:
    """Clock whose sleep just advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeInstrumentation:
    """Scripted instrumentation: replays debug states, last one repeats."""

    def __init__(
        self,
        states: list[DebugState] | None = None,
        flag: bool = True,
        sample: PerfSample | None = None,
    ) -> None:
        self.states = states or [
            DebugState(pending_count=0, settled=True, last_mutation_at=0, now=10_000)
        ]
        self.flag = flag
        self.sample = sample or PerfSample()
        self.forced = False
        self.marks: list[str] = []
        self.polls = 0

    def debug_state(self) -> DebugState:
        self.polls += 1
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]

    def collect(self) -> PerfSample:
        return self.sample.model_copy(deep=True)

    def mark(self, name: str) -> None:
        self.marks.append(name)

    @property
    def settled(self) -> bool:
        return self.flag

    def force_settled(self) -> None:
        self.forced = True
        self.flag = True


class FakeTarget:
    """Target that records every interaction instead of rendering."""

    def __init__(
        self,
        name: str = "fake",
        instrumentation: FakeInstrumentation | None = None,
        controls: tuple[str, ...] = REQUIRED_CONTROLS,
    ) -> None:
        self.name = name
        self.instrumentation = instrumentation or FakeInstrumentation()
        self.controls = set(controls)
        self.calls: list[tuple[object, ...]] = []

    def has_control(self, control: str) -> bool:
        return control in self.controls

    def reload(self) -> None:
        self.calls.append(("reload",))

    def click(self, control: str) -> None:
        self.calls.append(("click", control))

    def select(self, control: str, value: str) -> None:
        self.calls.append(("select", control, value))

    def pause(self, ms: float) -> None:
        self.calls.append(("pause", ms))

    def flush_frames(self, count: int = 2) -> None:
        self.calls.append(("flush_frames", count))

    def capture_screenshot(self, path: Path) -> Path:
        _ = path.write_bytes(b"\x89PNG fake")
        return path

    def dump_markup(self) -> str:
        return "<html></html>"

    def __enter__(self) -> FakeTarget:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fast_config(temp_dir: Path) -> BenchConfig:
    """Configuration with short settle timings and a small dataset."""
    return BenchConfig(
        results_dir=str(temp_dir / "results"),
        repetitions=3,
        dataset_size=200,
        poll_interval_ms=5.0,
        settle_timeout_ms=3000.0,
        quiet_ms=15.0,
        stable_window_ms=15.0,
        post_settle_delay_ms=1.0,
    )


@pytest.fixture
def fast_monitor_factory() -> Callable[[], SettleMonitor]:
    """Build monitors with short settle thresholds."""
    return lambda: SettleMonitor(quiet_threshold_ms=10.0, check_delay_ms=5.0, frame_ms=2.0)


@pytest.fixture
def sim_factory(
    fast_config: BenchConfig,
    fast_monitor_factory: Callable[[], SettleMonitor],
) -> Callable[[str], SimulatedTarget]:
    """Open fast simulated targets by app name."""

    def factory(app: str) -> SimulatedTarget:
        return SimulatedTarget(
            app,
            seed=fast_config.seed,
            dataset_size=fast_config.dataset_size,
            monitor_factory=fast_monitor_factory,
        )

    return factory


@pytest.fixture
def fake_clock() -> FakeClock:
    """A clock that only moves when slept on."""
    return FakeClock()


@pytest.fixture
def make_fake_target() -> Callable[..., FakeTarget]:
    """Build fake targets."""
    return FakeTarget


@pytest.fixture
def make_fake_instrumentation() -> Callable[..., FakeInstrumentation]:
    """Build scripted instrumentation."""
    return FakeInstrumentation


@pytest.fixture
def fast_waiter(fake_clock: FakeClock) -> SettleWaiter:
    """Waiter driven by the fake clock."""
    return SettleWaiter(
        poll_interval_ms=100.0,
        timeout_ms=1000.0,
        quiet_ms=120.0,
        stable_window_ms=300.0,
        post_settle_delay_ms=100.0,
        sleep=fake_clock.sleep,
        clock=fake_clock,
    )
