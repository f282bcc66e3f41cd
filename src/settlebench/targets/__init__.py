# Copyright (c) Syntropy Systems
"""Benchmark targets."""

from settlebench.targets.base import (
    REQUIRED_CONTROLS,
    Instrumentation,
    Target,
    missing_surface,
)
from settlebench.targets.simulated import SIMULATED_VARIANTS, SimulatedTarget

__all__ = [
    "REQUIRED_CONTROLS",
    "SIMULATED_VARIANTS",
    "Instrumentation",
    "SimulatedTarget",
    "Target",
    "missing_surface",
]
