# Copyright (c) Syntropy Systems
"""Pydantic models for perf samples, run records and aggregates."""

from __future__ import annotations

from enum import Enum

from pydantic import AliasChoices, Field

from .base import BenchBaseModel


class SettleStrategy(str, Enum):
    """How settle was declared for a wait, best to worst."""

    PRIMARY = "primary"
    FALLBACK = "fallback"
    FORCED = "forced"

    @property
    def rank(self) -> int:
        """Return the ordering rank, higher is worse."""
        return list(SettleStrategy).index(self)


class Mark(BenchBaseModel):
    """Named timestamped event, optionally with a measured duration."""

    name: str
    start_time: float
    duration: float | None = None


class LongTask(BenchBaseModel):
    """A unit of work that exceeded the long-task threshold."""

    start_time: float
    duration: float


class HeapInfo(BenchBaseModel):
    """Heap usage, when the host exposes it."""

    used_bytes: float | None = Field(
        default=None,
        validation_alias=AliasChoices("usedBytes", "usedJSHeapSize", "used_bytes"),
        serialization_alias="usedBytes",
    )


class DomInfo(BenchBaseModel):
    """Structural change counters."""

    mutations: int = 0


class DebugInfo(BenchBaseModel):
    """Monitor state captured alongside a sample."""

    last_mutation_at: float = 0.0
    pending: int = 0
    settled: bool = False


class DebugState(BenchBaseModel):
    """Result of a debug-state query against the monitor.

    ``now`` is the monitor clock at query time, so that quiet time can be
    computed without mixing clocks.
    """

    pending_count: int = Field(
        default=0,
        validation_alias=AliasChoices("pendingCount", "pending", "pending_count"),
        serialization_alias="pendingCount",
    )
    mutation_count: int = 0
    last_mutation_at: float = 0.0
    settled: bool = False
    now: float = 0.0

    @property
    def quiet_for_ms(self) -> float:
        """Milliseconds since the last observed mutation."""
        return self.now - self.last_mutation_at


class PerfSample(BenchBaseModel):
    """Point-in-time snapshot of a target's instrumentation."""

    marks: list[Mark] = Field(default_factory=list)
    long_tasks: list[LongTask] = Field(default_factory=list)
    heap: HeapInfo | None = None
    dom: DomInfo = Field(default_factory=DomInfo)
    debug: DebugInfo | None = None
    settle_strategy: SettleStrategy | None = None
    low_confidence: bool = False


class RunRecord(BenchBaseModel):
    """One trial's sample, keyed by app, scenario and repetition index."""

    app: str
    scenario: str
    run_index: int
    sample: PerfSample


class RawRow(BenchBaseModel):
    """Derived metrics for a single trial."""

    app: str
    scenario: str
    run: int
    update_latency: float
    long_task_count: float
    long_task_duration: float
    heap_size: float
    dom_mutations: float
    low_confidence: bool = False


class AggregatedMetric(BenchBaseModel):
    """Median and p95 of one metric over an (app, scenario) sample set."""

    app: str
    scenario: str
    metric: str
    median: float
    p95: float
    count: int
    raw_values: list[float] = Field(default_factory=list)
