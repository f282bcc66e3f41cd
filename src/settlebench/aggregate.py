# Copyright (c) Syntropy Systems
"""Aggregate run records into summary tables."""
from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from settlebench.errors import AggregationGap, RunNotFoundError
from settlebench.models.sample import AggregatedMetric, RawRow
from settlebench.stats import METRICS, derive_metrics, median, p95
from settlebench.storage import latest_run_id

if TYPE_CHECKING:
    from pathlib import Path

    from settlebench.storage import RunStore

logger = logging.getLogger(__name__)

RAW_FIELDS = [
    "app",
    "scenario",
    "run",
    *METRICS,
    "lowConfidence",
]
METRIC_FIELDS = ["app", "scenario", "median", "p95", "count"]
AGGREGATED_FIELDS = ["app", "scenario", "metric", "median", "p95", "count"]


@dataclass
class AggregationResult:
    """Raw rows and aggregated metrics for one run identifier."""

    run_id: str
    raw_rows: list[RawRow] = field(default_factory=list)
    metrics: list[AggregatedMetric] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def for_metric(self, metric: str) -> list[AggregatedMetric]:
        """Return the aggregated rows of one metric."""
        return [m for m in self.metrics if m.metric == metric]

    def group_counts(self) -> dict[tuple[str, str], int]:
        """Return the number of trials per (app, scenario)."""
        counts: dict[tuple[str, str], int] = {}
        for row in self.raw_rows:
            key = (row.app, row.scenario)
            counts[key] = counts.get(key, 0) + 1
        return counts


def resolve_run_id(results_dir: Path, override: str | None = None) -> str:
    """Return the run id to aggregate: the override or the latest present."""
    if override:
        if not (results_dir / override).is_dir():
            msg = f"Run not found: {override}"
            raise RunNotFoundError(msg)
        return override

    run_id = latest_run_id(results_dir)
    if run_id is None:
        msg = f"No benchmark results found in {results_dir}"
        raise RunNotFoundError(msg)
    return run_id


def aggregate_run(store: RunStore, expected: int | None = None) -> AggregationResult:
    """Compute per-(app, scenario) medians and p95s for every metric.

    Groups without readable records are skipped with a warning rather
    than reported as zero.
    """
    result = AggregationResult(run_id=store.run_id)

    for app, scenario, _ in store.groups():
        try:
            records = store.read_group(app, scenario)
        except AggregationGap as exc:
            logger.warning("%s, skipping", exc)
            result.skipped.append(f"{app}/{scenario}")
            continue

        values: dict[str, list[float]] = {metric: [] for metric in METRICS}
        for record in records:
            derived = derive_metrics(record.sample)
            result.raw_rows.append(
                RawRow(
                    app=app,
                    scenario=scenario,
                    run=record.run_index,
                    update_latency=derived["updateLatency"],
                    long_task_count=derived["longTaskCount"],
                    long_task_duration=derived["longTaskDuration"],
                    heap_size=derived["heapSize"],
                    dom_mutations=derived["domMutations"],
                    low_confidence=record.sample.low_confidence,
                )
            )
            for metric in METRICS:
                values[metric].append(derived[metric])

        for metric in METRICS:
            samples = values[metric]
            if not samples:
                continue
            result.metrics.append(
                AggregatedMetric(
                    app=app,
                    scenario=scenario,
                    metric=metric,
                    median=median(samples),
                    p95=p95(samples),
                    count=len(samples),
                    raw_values=samples,
                )
            )

        if expected is not None and len(records) < expected:
            logger.warning("%s-%s: %d/%d runs", app, scenario, len(records), expected)
        else:
            logger.info("%s-%s: %d runs", app, scenario, len(records))

    logger.info(
        "Aggregated %d benchmark runs into %d metric rows for run %s",
        len(result.raw_rows),
        len(result.metrics),
        result.run_id,
    )
    return result


def _format_stat(value: float) -> str:
    return f"{value:.2f}"


def _format_raw(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _write_csv(path: Path, fieldnames: list[str], rows: list[dict[str, str]]) -> None:
    with path.open("w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)


def write_summary(result: AggregationResult, summary_dir: Path) -> list[Path]:
    """Write raw, per-metric and combined CSV tables; return their paths."""
    summary_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []

    aggregated_path = summary_dir / "aggregated.csv"
    _write_csv(
        aggregated_path,
        AGGREGATED_FIELDS,
        [
            {
                "app": m.app,
                "scenario": m.scenario,
                "metric": m.metric,
                "median": _format_stat(m.median),
                "p95": _format_stat(m.p95),
                "count": str(m.count),
            }
            for m in result.metrics
        ],
    )
    written.append(aggregated_path)

    raw_path = summary_dir / "raw_data.csv"
    raw_rows: list[dict[str, str]] = []
    for row in result.raw_rows:
        data = row.model_dump(by_alias=True)
        raw_rows.append(
            {
                "app": row.app,
                "scenario": row.scenario,
                "run": str(row.run),
                **{metric: _format_raw(data[metric]) for metric in METRICS},
                "lowConfidence": "true" if row.low_confidence else "false",
            }
        )
    _write_csv(raw_path, RAW_FIELDS, raw_rows)
    written.append(raw_path)

    for metric in METRICS:
        metric_rows = result.for_metric(metric)
        if not metric_rows:
            continue
        metric_path = summary_dir / f"{metric}.csv"
        _write_csv(
            metric_path,
            METRIC_FIELDS,
            [
                {
                    "app": m.app,
                    "scenario": m.scenario,
                    "median": _format_stat(m.median),
                    "p95": _format_stat(m.p95),
                    "count": str(m.count),
                }
                for m in metric_rows
            ],
        )
        written.append(metric_path)

    return written
