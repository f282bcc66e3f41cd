# Copyright (c) Syntropy Systems
"""Orchestrator-side settle waiting.

The primary strategy polls the target's debug state and requires the
settled flag, a quiet period and no pending work, sustained over a
stability window. On timeout it falls back to the settled flag alone,
and if that also times out it forces the flag and reports a forced
(low-confidence) settle instead of hanging the run.
"""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from settlebench.errors import SettleTimeout
from settlebench.models.sample import SettleStrategy

if TYPE_CHECKING:
    from settlebench.config import BenchConfig
    from settlebench.targets.base import Instrumentation, Target

logger = logging.getLogger(__name__)


class SettleWaiter:
    """Waits for a target to settle with bounded polling."""

    poll_interval_ms: float
    timeout_ms: float
    quiet_ms: float
    stable_window_ms: float
    post_settle_delay_ms: float

    def __init__(  # noqa: PLR0913
        self,
        poll_interval_ms: float = 100.0,
        timeout_ms: float = 30000.0,
        quiet_ms: float = 120.0,
        stable_window_ms: float = 300.0,
        post_settle_delay_ms: float = 100.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.poll_interval_ms = poll_interval_ms
        self.timeout_ms = timeout_ms
        self.quiet_ms = quiet_ms
        self.stable_window_ms = stable_window_ms
        self.post_settle_delay_ms = post_settle_delay_ms
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(cls, config: BenchConfig) -> SettleWaiter:
        """Build a waiter from the benchmark configuration."""
        return cls(
            poll_interval_ms=config.poll_interval_ms,
            timeout_ms=config.settle_timeout_ms,
            quiet_ms=config.quiet_ms,
            stable_window_ms=config.stable_window_ms,
            post_settle_delay_ms=config.post_settle_delay_ms,
        )

    def wait(self, target: Target, timeout_ms: float | None = None) -> SettleStrategy:
        """Wait until the target settles; return how settle was declared."""
        instrumentation = target.instrumentation
        if instrumentation is None:
            msg = f"Target '{target.name}' has no instrumentation"
            raise RuntimeError(msg)

        timeout = timeout_ms if timeout_ms is not None else self.timeout_ms
        strategy = SettleStrategy.PRIMARY
        try:
            self.wait_stable(instrumentation, timeout)
        except SettleTimeout as exc:
            logger.warning("%s on %s, falling back to settled flag", exc, target.name)
            try:
                self.wait_flag(instrumentation, timeout)
                strategy = SettleStrategy.FALLBACK
            except SettleTimeout:
                logger.warning(
                    "Both settle strategies timed out on %s, assuming settled",
                    target.name,
                )
                instrumentation.force_settled()
                strategy = SettleStrategy.FORCED

        target.flush_frames(2)
        self._sleep(self.post_settle_delay_ms / 1000)
        return strategy

    def wait_stable(self, instrumentation: Instrumentation, timeout_ms: float) -> None:
        """Poll debug state until settled, quiet and idle for the stability window."""
        deadline = self._clock() + timeout_ms / 1000
        stable_for = 0.0

        while self._clock() < deadline:
            state = instrumentation.debug_state()
            if (
                state.settled
                and state.quiet_for_ms >= self.quiet_ms
                and state.pending_count == 0
            ):
                stable_for += self.poll_interval_ms
                if stable_for >= self.stable_window_ms:
                    return
            else:
                stable_for = 0.0
            self._sleep(self.poll_interval_ms / 1000)

        raise SettleTimeout("primary", timeout_ms)

    def wait_flag(self, instrumentation: Instrumentation, timeout_ms: float) -> None:
        """Poll the settled flag alone."""
        deadline = self._clock() + timeout_ms / 1000

        while self._clock() < deadline:
            if instrumentation.settled:
                return
            self._sleep(self.poll_interval_ms / 1000)

        raise SettleTimeout("fallback", timeout_ms)
