# Copyright (c) Syntropy Systems
"""Failure diagnostics.

When a trial fails, whatever the target can still produce is written to
the run's debug directory: a visual snapshot, the full markup and the
last perf snapshot. Each part is best effort; a part that cannot be
captured is logged and skipped so the trial's own failure still surfaces.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from settlebench.targets.base import Target

logger = logging.getLogger(__name__)


def capture_diagnostics(target: Target, debug_dir: Path, stem: str) -> list[Path]:
    """Write a debug bundle for ``target``; return the files written."""
    debug_dir.mkdir(parents=True, exist_ok=True)
    base = debug_dir / stem
    written: list[Path] = []

    try:
        written.append(target.capture_screenshot(base.with_suffix(".png")))
    except Exception as exc:
        logger.exception("Failed to capture screenshot for %s", stem, exc_info=exc)

    try:
        html_path = base.with_suffix(".html")
        _ = html_path.write_text(target.dump_markup())
        written.append(html_path)
    except Exception as exc:
        logger.exception("Failed to dump markup for %s", stem, exc_info=exc)

    try:
        json_path = base.with_suffix(".json")
        instrumentation = target.instrumentation
        payload = instrumentation.collect().to_json() if instrumentation else "{}"
        _ = json_path.write_text(payload)
        written.append(json_path)
    except Exception as exc:
        logger.exception("Failed to collect perf snapshot for %s", stem, exc_info=exc)

    logger.info("Wrote %d diagnostic file(s) to %s", len(written), debug_dir)
    return written
