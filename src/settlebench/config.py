# Copyright (c) Syntropy Systems
"""Configuration management for settlebench."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import cast

import yaml

from settlebench.workload import Seed

CONFIG_FILENAME = "settlebench.yaml"

DEFAULT_PORTS = {"react": 5173, "solid": 5175}


@dataclass
class BenchConfig:
    """Configuration for a benchmark run."""

    # Where run records, summaries and debug bundles are written
    results_dir: str = "bench/results"

    # Trials per (app, scenario)
    repetitions: int = 10

    # Dataset seed and size used on every reset
    seed: Seed = "42"
    dataset_size: int = 10000

    # Orchestrator-side settle detection (milliseconds)
    poll_interval_ms: float = 100.0
    settle_timeout_ms: float = 30000.0
    quiet_ms: float = 120.0
    stable_window_ms: float = 300.0
    post_settle_delay_ms: float = 100.0

    # Keep going with the next app when one app fails
    isolate_apps: bool = False

    # Browser targets
    headless: bool = True
    navigation_timeout_ms: float = 120000.0
    ports: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_PORTS))

    @property
    def results_path(self) -> Path:
        """Return the results directory as a path."""
        return Path(self.results_dir)

    def base_url(self, app: str) -> str:
        """Return the local URL an app is served on."""
        if app not in self.ports:
            msg = f"No port configured for app '{app}'"
            raise KeyError(msg)
        return f"http://localhost:{self.ports[app]}"


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the nearest settlebench.yaml by walking up from start_path.

    Returns None if no config file is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        current = current.parent

    # Check root
    candidate = current / CONFIG_FILENAME
    if candidate.is_file():
        return candidate

    return None


def load_config(config_path: Path | None = None) -> BenchConfig:
    """Load configuration from settlebench.yaml or defaults.

    Looks for config in:
    1. Provided config_path
    2. Nearest settlebench.yaml walking up from the cwd
    3. Defaults

    Keys with an unexpected type are ignored.
    """
    config = BenchConfig()

    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.exists():
        return config

    with config_path.open() as f:
        data = cast("dict[str, object]", yaml.safe_load(f) or {})

    for f_info in fields(BenchConfig):
        value = data.get(f_info.name)
        if value is None:
            continue
        if f_info.name == "seed":
            # Numeric seeds select the stream state directly
            if isinstance(value, (str, int)) and not isinstance(value, bool):
                config.seed = value
            continue
        default = getattr(config, f_info.name)
        if isinstance(default, bool):
            if isinstance(value, bool):
                setattr(config, f_info.name, value)
        elif isinstance(default, int):
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                setattr(config, f_info.name, int(value))
        elif isinstance(default, float):
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                setattr(config, f_info.name, float(value))
        elif isinstance(default, str):
            if isinstance(value, (str, int)):
                setattr(config, f_info.name, str(value))
        elif isinstance(default, dict) and isinstance(value, dict):
            ports = cast("dict[object, object]", value)
            config.ports.update(
                {
                    str(name): int(port)
                    for name, port in ports.items()
                    if isinstance(port, int)
                }
            )

    return config
