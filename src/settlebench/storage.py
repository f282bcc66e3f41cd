# Copyright (c) Syntropy Systems
"""Run record storage.

Layout under the results directory::

    <run_id>/<app>/<scenario>/<run_index>.json   one PerfSample per trial
    <run_id>/debug/                               failure bundles
    <run_id>/summary/                             aggregated CSV tables

Records are written once and never replaced.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pydantic import ValidationError

from settlebench.errors import AggregationGap, RecordExistsError
from settlebench.models.sample import PerfSample, RunRecord

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger = logging.getLogger(__name__)

SUMMARY_DIR = "summary"
DEBUG_DIR = "debug"
_RESERVED_DIRS = {SUMMARY_DIR, DEBUG_DIR}


def make_run_id(now: datetime | None = None) -> str:
    """Return a sortable run identifier such as ``2024-01-01T00-00``."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M")


def list_run_ids(results_dir: Path) -> list[str]:
    """Return run identifiers present in the results directory, sorted."""
    if not results_dir.is_dir():
        return []
    return sorted(
        p.name for p in results_dir.iterdir() if p.is_dir() and not p.name.startswith(".")
    )


def latest_run_id(results_dir: Path) -> str | None:
    """Return the lexicographically latest run identifier, if any."""
    run_ids = list_run_ids(results_dir)
    return run_ids[-1] if run_ids else None


def _sorted_dirs(path: Path) -> list[Path]:
    return sorted(
        (p for p in path.iterdir() if p.is_dir() and not p.name.startswith(".")),
        key=lambda p: p.name,
    )


def _run_index(path: Path) -> int | None:
    try:
        return int(path.stem)
    except ValueError:
        return None


class RunStore:
    """Append-only store of run records for one run identifier."""

    results_dir: Path
    run_id: str

    def __init__(self, results_dir: Path, run_id: str) -> None:
        self.results_dir = results_dir
        self.run_id = run_id

    @property
    def run_dir(self) -> Path:
        """Directory holding this run's records."""
        return self.results_dir / self.run_id

    @property
    def debug_dir(self) -> Path:
        """Directory for failure diagnostics."""
        return self.run_dir / DEBUG_DIR

    @property
    def summary_dir(self) -> Path:
        """Directory for aggregated tables."""
        return self.run_dir / SUMMARY_DIR

    def record_path(self, app: str, scenario: str, run_index: int) -> Path:
        """Return where a trial's record lives."""
        return self.run_dir / app / scenario / f"{run_index}.json"

    def write(self, record: RunRecord) -> Path:
        """Persist a record; refuses to replace an existing one."""
        path = self.record_path(record.app, record.scenario, record.run_index)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with path.open("x") as f:
                _ = f.write(record.sample.to_json())
        except FileExistsError as exc:
            msg = f"Run record already exists: {path}"
            raise RecordExistsError(msg) from exc
        return path

    def read(self, app: str, scenario: str, run_index: int) -> RunRecord:
        """Read a single record."""
        path = self.record_path(app, scenario, run_index)
        sample = PerfSample.model_validate_json(path.read_text())
        return RunRecord(app=app, scenario=scenario, run_index=run_index, sample=sample)

    def groups(self) -> Iterator[tuple[str, str, Path]]:
        """Yield ``(app, scenario, dir)`` for every scenario directory."""
        if not self.run_dir.is_dir():
            return
        for app_dir in _sorted_dirs(self.run_dir):
            if app_dir.name in _RESERVED_DIRS:
                continue
            for scenario_dir in _sorted_dirs(app_dir):
                yield app_dir.name, scenario_dir.name, scenario_dir

    def read_group(self, app: str, scenario: str) -> list[RunRecord]:
        """Read all records of an (app, scenario) group, ordered by index.

        Unreadable records are skipped with a warning. Raises
        ``AggregationGap`` when the group has no readable records.
        """
        group_dir = self.run_dir / app / scenario
        files = [p for p in group_dir.glob("*.json") if _run_index(p) is not None]
        files.sort(key=lambda p: _run_index(p) or 0)

        records: list[RunRecord] = []
        for path in files:
            try:
                sample = PerfSample.model_validate_json(path.read_text())
            except (OSError, ValidationError) as exc:
                logger.warning("Failed to read %s: %s", path, exc)
                continue
            run_index = _run_index(path)
            assert run_index is not None  # noqa: S101
            records.append(
                RunRecord(app=app, scenario=scenario, run_index=run_index, sample=sample)
            )

        if not records:
            msg = f"No run records for {app}/{scenario} in {self.run_id}"
            raise AggregationGap(msg)
        return records
