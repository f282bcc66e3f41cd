# Copyright (c) Syntropy Systems
"""In-process grid target for smoke runs and tests.

Mirrors the benchmark apps' state (rows, filters, sort, activity log)
and reports work, marks, long tasks and rendered changes to an embedded
``SettleMonitor``. The two variants differ only in how finely a render
is reported: one mutation per changed row or one per changed cell.
"""
from __future__ import annotations

import html
import time
from typing import TYPE_CHECKING, Callable, Literal

from typing_extensions import Self

from settlebench.monitor import LONG_TASK_THRESHOLD_MS, SettleMonitor
from settlebench.targets.base import REQUIRED_CONTROLS
from settlebench.workload import (
    Row,
    Stream,
    create_stream,
    generate_rows,
    insert_rows,
    mutate_rows_fraction,
    remove_rows,
    sort_rows,
)

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType

    from settlebench.workload import Seed

Granularity = Literal["row", "cell"]

SIMULATED_VARIANTS: dict[str, Granularity] = {"react": "row", "solid": "cell"}

VISIBLE_ROWS = 50
BULK_SIZE = 1000
TICK_FRACTION = 0.01

_COLUMNS = ("product", "region", "price", "qty", "updated_at")
_EXTRA_CONTROLS = tuple(f"col-{c}" for c in _COLUMNS) + ("seed",)


class SimulatedTarget:
    """Grid app simulation with an embedded settle monitor."""

    name: str
    seed: Seed
    dataset_size: int
    granularity: Granularity

    _monitor_factory: Callable[[], SettleMonitor]
    _monitor: SettleMonitor | None
    _controls: frozenset[str]
    _rows: list[Row]
    _stream: Stream | None
    _region: str
    _timeframe: str
    _log: list[str]
    _visible: list[tuple[object, ...]]

    def __init__(  # noqa: PLR0913
        self,
        name: str,
        seed: Seed = "42",
        dataset_size: int = 10000,
        granularity: Granularity | None = None,
        monitor_factory: Callable[[], SettleMonitor] | None = None,
        controls: tuple[str, ...] | None = None,
    ) -> None:
        """Initialize a simulated target.

        Args:
            name: App name, also selects the variant's granularity
            seed: Seed used by the generate control
            dataset_size: Rows produced by the generate control
            granularity: Override the mutation granularity
            monitor_factory: Builds a fresh monitor on every reload
            controls: Override the exposed controls

        """
        self.name = name
        self.seed = seed
        self.dataset_size = dataset_size
        self.granularity = granularity or SIMULATED_VARIANTS.get(name, "row")
        self._monitor_factory = monitor_factory or SettleMonitor
        self._monitor = None
        self._controls = frozenset(
            controls if controls is not None else REQUIRED_CONTROLS + _EXTRA_CONTROLS
        )
        self._reset_state()

    def _reset_state(self) -> None:
        self._rows = []
        self._stream = None
        self._region = "US"
        self._timeframe = "7d"
        self._log = []
        self._visible = []

    @property
    def instrumentation(self) -> SettleMonitor | None:
        """Return the attached monitor."""
        return self._monitor

    @property
    def rows(self) -> list[Row]:
        """Return the current dataset."""
        return self._rows

    @property
    def region(self) -> str:
        """Return the current region filter."""
        return self._region

    @property
    def activity_log(self) -> list[str]:
        """Return the activity log, newest first."""
        return list(self._log)

    def __enter__(self) -> Self:
        """Load the app."""
        self.reload()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Tear the app down."""
        self.close()

    def close(self) -> None:
        """Detach the monitor."""
        if self._monitor is not None:
            self._monitor.detach()
            self._monitor = None

    def has_control(self, control: str) -> bool:
        """Return whether a control id is exposed."""
        return control in self._controls

    def reload(self) -> None:
        """Drop all state and start a fresh monitor."""
        self.close()
        self._reset_state()
        self._monitor = self._monitor_factory().attach()

    def click(self, control: str) -> None:
        """Activate a button or column header."""
        self._require(control)
        if control == "generate":
            self._work("generate", self._generate)
        elif control == "tick-1pct":
            self._work("tick", self._tick)
        elif control == "insert-1k":
            self._work("insert", lambda: insert_rows(self._rows, BULK_SIZE))
        elif control == "remove-1k":
            self._work("remove", lambda: remove_rows(self._rows, BULK_SIZE))
        elif control.startswith("col-"):
            column = control[len("col-"):]
            self._work(f"sort-{column}", lambda: sort_rows(self._rows, column))
        else:
            msg = f"Control '{control}' is not clickable"
            raise ValueError(msg)

    def select(self, control: str, value: str) -> None:
        """Change a select control's value."""
        self._require(control)
        if control == "filter-region":
            self._work(f"region-{value}", lambda: setattr(self, "_region", value))
        elif control == "filter-timeframe":
            self._work(f"timeframe-{value}", lambda: setattr(self, "_timeframe", value))
        else:
            msg = f"Control '{control}' is not a select"
            raise ValueError(msg)

    def pause(self, ms: float) -> None:
        """Idle for ``ms`` milliseconds."""
        time.sleep(ms / 1000)

    def flush_frames(self, count: int = 2) -> None:
        """Wait for ``count`` rendering frames."""
        monitor = self._require_monitor()
        time.sleep(count * monitor.frame_ms / 1000)

    def capture_screenshot(self, path: Path) -> Path:
        """Write a plain-text rendering of the visible grid."""
        out = path.with_suffix(".txt")
        lines = [f"{self.name} region={self._region} rows={len(self._rows)}"]
        lines.extend(" | ".join(str(v) for v in row) for row in self._render_visible())
        _ = out.write_text("\n".join(lines) + "\n")
        return out

    def dump_markup(self) -> str:
        """Return the visible grid as HTML."""
        cells = "".join(
            "<tr>" + "".join(f"<td>{html.escape(str(v))}</td>" for v in row) + "</tr>"
            for row in self._render_visible()
        )
        log = "".join(f"<li>{html.escape(entry)}</li>" for entry in self._log)
        return (
            f'<html><body data-app="{html.escape(self.name)}">'
            f'<table data-test="grid">{cells}</table>'
            f'<ul data-test="activity-log">{log}</ul>'
            "</body></html>"
        )

    def _require(self, control: str) -> None:
        if control not in self._controls:
            msg = f"No control '{control}' on {self.name}"
            raise LookupError(msg)

    def _require_monitor(self) -> SettleMonitor:
        if self._monitor is None:
            msg = f"Target '{self.name}' is not loaded"
            raise RuntimeError(msg)
        return self._monitor

    def _generate(self) -> None:
        self._stream = create_stream(self.seed)
        self._rows = generate_rows(self.dataset_size, self._stream)

    def _tick(self) -> None:
        if self._stream is None:
            return
        _ = mutate_rows_fraction(self._rows, TICK_FRACTION, self._stream)

    def _work(self, name: str, action: Callable[[], object]) -> None:
        monitor = self._require_monitor()
        monitor.mark_work_start()
        monitor.mark(f"{name}:start")
        started = time.perf_counter()

        _ = action()
        self._log.insert(0, name)
        self._render(monitor)

        elapsed_ms = (time.perf_counter() - started) * 1000
        monitor.mark(f"{name}:end", start_mark=f"{name}:start")
        if elapsed_ms > LONG_TASK_THRESHOLD_MS:
            monitor.notify_long_task(monitor.now() - elapsed_ms, elapsed_ms)
        monitor.mark_work_end()

    def _render_visible(self) -> list[tuple[object, ...]]:
        visible = [r for r in self._rows if r.region == self._region][:VISIBLE_ROWS]
        return [(r.id, r.product, r.region, r.price, r.qty) for r in visible]

    def _render(self, monitor: SettleMonitor) -> None:
        rendered = self._render_visible()
        changes = 0
        for i in range(max(len(rendered), len(self._visible))):
            old = self._visible[i] if i < len(self._visible) else None
            new = rendered[i] if i < len(rendered) else None
            if old == new:
                continue
            if self.granularity == "row" or old is None or new is None:
                changes += 1
            else:
                changes += sum(1 for a, b in zip(old, new) if a != b)
        self._visible = rendered

        # Activity log entry
        monitor.notify_mutation()
        for _ in range(changes):
            monitor.notify_mutation()
