# Copyright (c) Syntropy Systems
"""Control/query surface every benchmark target exposes."""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from settlebench.models.sample import DebugState, PerfSample

# Controls the scenario library drives, addressed by stable ids
REQUIRED_CONTROLS = (
    "filter-region",
    "filter-timeframe",
    "col-price",
    "tick-1pct",
    "generate",
    "insert-1k",
    "remove-1k",
)


class Instrumentation(Protocol):
    """Query side of a target's settle monitor."""

    def debug_state(self) -> DebugState:
        ...

    def collect(self) -> PerfSample:
        ...

    def mark(self, name: str) -> None:
        ...

    @property
    def settled(self) -> bool:
        ...

    def force_settled(self) -> None:
        ...


class Target(Protocol):
    """A UI implementation under test."""

    name: str

    @property
    def instrumentation(self) -> Instrumentation | None:
        ...

    def has_control(self, control: str) -> bool:
        ...

    def reload(self) -> None:
        ...

    def click(self, control: str) -> None:
        ...

    def select(self, control: str, value: str) -> None:
        ...

    def pause(self, ms: float) -> None:
        ...

    def flush_frames(self, count: int = 2) -> None:
        ...

    def capture_screenshot(self, path: Path) -> Path:
        ...

    def dump_markup(self) -> str:
        ...


def missing_surface(target: Target) -> list[str]:
    """Return the required controls and hooks the target does not expose."""
    missing = [c for c in REQUIRED_CONTROLS if not target.has_control(c)]
    if target.instrumentation is None:
        missing.append("instrumentation")
    return missing
