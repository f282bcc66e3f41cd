# Copyright (c) Syntropy Systems
"""Order statistics and per-sample metric derivation.

``median`` and ``p95`` pick a single element of the sorted sample set
without interpolation: the median of an even-sized set is the upper
middle element.
"""
from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from settlebench.models.sample import PerfSample

METRICS = (
    "updateLatency",
    "longTaskCount",
    "longTaskDuration",
    "heapSize",
    "domMutations",
)

METRIC_UNITS = {
    "updateLatency": "ms",
    "longTaskCount": "count",
    "longTaskDuration": "ms",
    "heapSize": "MB",
    "domMutations": "count",
}


def median(values: Sequence[float]) -> float:
    """Return ``sorted(values)[n // 2]``."""
    if not values:
        msg = "median of an empty sample set"
        raise ValueError(msg)
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


def p95(values: Sequence[float]) -> float:
    """Return ``sorted(values)[min(floor(n * 0.95), n - 1)]``."""
    if not values:
        msg = "p95 of an empty sample set"
        raise ValueError(msg)
    ordered = sorted(values)
    index = min(math.floor(len(ordered) * 0.95), len(ordered) - 1)
    return ordered[index]


def derive_metrics(sample: PerfSample) -> dict[str, float]:
    """Reduce a perf sample to the aggregated metrics."""
    long_task_duration = sum(task.duration for task in sample.long_tasks)
    if sample.marks:
        update_latency = sum(mark.duration or 0.0 for mark in sample.marks)
    else:
        update_latency = long_task_duration

    used_bytes = sample.heap.used_bytes if sample.heap is not None else None
    heap_mb = used_bytes / 1024 / 1024 if used_bytes else 0.0

    return {
        "updateLatency": update_latency,
        "longTaskCount": float(len(sample.long_tasks)),
        "longTaskDuration": long_task_duration,
        "heapSize": heap_mb,
        "domMutations": float(sample.dom.mutations),
    }
