# Copyright (c) Syntropy Systems
"""Scenario library.

Each scenario is a fixed action sequence applied to a freshly generated
dataset. Actions receive a ``ScenarioContext`` and drive the target only
through its controls; intermediate settles go through ``ctx.settle``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from settlebench.models.sample import SettleStrategy
    from settlebench.targets.base import Target


@dataclass
class ScenarioContext:
    """What an action sequence gets to work with."""

    target: Target
    settle: Callable[[], SettleStrategy]


Action = Callable[[ScenarioContext], None]


@dataclass(frozen=True)
class Scenario:
    """A named action sequence."""

    id: str
    description: str
    action: Action

    def run(self, ctx: ScenarioContext) -> None:
        """Execute the action sequence."""
        self.action(ctx)


TICK_COUNT = 50
TICK_INTERVAL_MS = 100
SORT_COUNT = 5
IDLE_MS = 30000
IDLE_SETTLE_TIMEOUT_MS = 10000


def filter_change(ctx: ScenarioContext) -> None:
    """Switch the region filter to EU."""
    ctx.target.select("filter-region", "EU")


def repeated_small_update(ctx: ScenarioContext) -> None:
    """Mutate 1% of rows, 50 times, 100ms apart."""
    for _ in range(TICK_COUNT):
        ctx.target.click("tick-1pct")
        ctx.target.pause(TICK_INTERVAL_MS)


def bulk_insert(ctx: ScenarioContext) -> None:
    """Append 1000 rows."""
    ctx.target.click("insert-1k")


def bulk_remove(ctx: ScenarioContext) -> None:
    """Drop 1000 rows."""
    ctx.target.click("remove-1k")


def repeated_sort(ctx: ScenarioContext) -> None:
    """Sort by price five times, settling after each."""
    for i in range(SORT_COUNT):
        ctx.target.click("col-price")
        # The final settle belongs to the orchestrator
        if i < SORT_COUNT - 1:
            _ = ctx.settle()


def long_idle(ctx: ScenarioContext) -> None:
    """Do nothing for 30 seconds."""
    ctx.target.pause(IDLE_MS)


SCENARIOS: tuple[Scenario, ...] = (
    Scenario("filter-change", "change region", filter_change),
    Scenario("repeated-small-update", "tick 1% 50 times", repeated_small_update),
    Scenario("bulk-insert", "insert 1000 rows", bulk_insert),
    Scenario("bulk-remove", "remove 1000 rows", bulk_remove),
    Scenario("repeated-sort", "toggle price sort", repeated_sort),
    Scenario("long-idle", "idle 30s", long_idle),
)

# Settle timeouts that differ from the configured default
SETTLE_TIMEOUT_OVERRIDES_MS = {"long-idle": IDLE_SETTLE_TIMEOUT_MS}


def get_scenario(scenario_id: str) -> Scenario:
    """Look up a scenario by id."""
    for scenario in SCENARIOS:
        if scenario.id == scenario_id:
            return scenario
    msg = f"Unknown scenario: {scenario_id}"
    raise KeyError(msg)


def select_scenarios(ids: list[str] | None) -> tuple[Scenario, ...]:
    """Return the scenarios with the given ids, or all of them."""
    if not ids:
        return SCENARIOS
    return tuple(get_scenario(i) for i in ids)
