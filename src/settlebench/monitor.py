# Copyright (c) Syntropy Systems
"""Settle detection.

A target reports logical work (start/end), structural changes and long
tasks. The monitor combines them into a single ``settled`` decision:
no pending work AND no structural change for the quiet threshold. Either
signal alone is not enough, since pending work can finish before its
async render effects land, and a quiet tree says nothing about work that
has not touched it yet.

``SettleTracker`` is the pure state machine. ``SettleMonitor`` runs one
on a dedicated thread and is the only thing that touches it; callers
talk to it with messages.
"""
from __future__ import annotations

import logging
import queue
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from threading import Thread
from typing import TYPE_CHECKING, Callable, Union

from typing_extensions import Self

from settlebench.errors import MonitorDetachedError
from settlebench.models.sample import (
    DebugInfo,
    DebugState,
    DomInfo,
    HeapInfo,
    LongTask,
    Mark,
    PerfSample,
)

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

QUIET_THRESHOLD_MS = 80.0
CHECK_DELAY_MS = 50.0
FRAME_MS = 16.0
LONG_TASK_THRESHOLD_MS = 50.0


class SettlePhase(str, Enum):
    """Monitor phase."""

    BUSY = "busy"
    PROBING = "probing"
    SETTLED = "settled"


class SettleTracker:
    """Settle state machine driven by explicit timestamps (milliseconds).

    A settle check fires ``check_delay_ms`` plus two frames after it is
    scheduled. It settles only if nothing is pending and the last
    mutation is older than ``quiet_threshold_ms``; otherwise it
    reschedules itself.
    """

    quiet_threshold_ms: float
    check_delay_ms: float
    frame_ms: float

    pending_count: int
    mutation_count: int
    last_mutation_at: float
    settled: bool
    phase: SettlePhase
    check_due: float | None

    def __init__(
        self,
        quiet_threshold_ms: float = QUIET_THRESHOLD_MS,
        check_delay_ms: float = CHECK_DELAY_MS,
        frame_ms: float = FRAME_MS,
    ) -> None:
        self.quiet_threshold_ms = quiet_threshold_ms
        self.check_delay_ms = check_delay_ms
        self.frame_ms = frame_ms

        self.pending_count = 0
        self.mutation_count = 0
        self.last_mutation_at = 0.0
        self.settled = True
        self.phase = SettlePhase.SETTLED
        self.check_due = None

        self._marks: list[Mark] = []
        self._long_tasks: list[LongTask] = []

    def work_start(self, now: float) -> None:
        """Register the start of a unit of logical work."""
        _ = now
        self.pending_count += 1
        self.settled = False
        self.phase = SettlePhase.BUSY

    def work_end(self, now: float) -> None:
        """Register the end of a unit of logical work."""
        self.pending_count = max(0, self.pending_count - 1)
        if self.pending_count == 0:
            self.phase = SettlePhase.PROBING
            self._schedule_check(now)

    def observe_mutation(self, now: float) -> None:
        """Register a structural change of the rendered output."""
        self.mutation_count += 1
        self.last_mutation_at = now
        self.settled = False
        self.phase = SettlePhase.BUSY
        # Nothing else would wake the check once all work has ended
        if self.pending_count == 0:
            self._schedule_check(now)

    def observe_long_task(self, start_time: float, duration: float) -> None:
        """Append a long task to the log."""
        self._long_tasks.append(LongTask(start_time=start_time, duration=duration))

    def record_mark(
        self,
        name: str,
        now: float,
        start_mark: str | None = None,
    ) -> Mark:
        """Record a named mark, measured from ``start_mark`` when given."""
        duration = None
        if start_mark is not None:
            for previous in reversed(self._marks):
                if previous.name == start_mark:
                    duration = now - previous.start_time
                    break
        mark = Mark(name=name, start_time=now, duration=duration)
        self._marks.append(mark)
        return mark

    def force_settled(self) -> None:
        """Set the settled flag regardless of the current state."""
        self.settled = True
        self.phase = SettlePhase.SETTLED

    def advance(self, now: float) -> SettlePhase:
        """Run the settle check if it is due at ``now``."""
        if self.check_due is None or now < self.check_due:
            return self.phase

        self.check_due = None
        quiet = now - self.last_mutation_at > self.quiet_threshold_ms
        if quiet and self.pending_count == 0:
            self.settled = True
            self.phase = SettlePhase.SETTLED
        else:
            if self.pending_count == 0:
                self.phase = SettlePhase.PROBING
            self._schedule_check(now)
        return self.phase

    def debug_state(self, now: float) -> DebugState:
        """Return the counters the orchestrator polls."""
        return DebugState(
            pending_count=self.pending_count,
            mutation_count=self.mutation_count,
            last_mutation_at=self.last_mutation_at,
            settled=self.settled,
            now=now,
        )

    def snapshot(self, heap_bytes: float | None = None) -> PerfSample:
        """Return a point-in-time copy of everything recorded so far."""
        return PerfSample(
            marks=[m.model_copy() for m in self._marks],
            long_tasks=[t.model_copy() for t in self._long_tasks],
            heap=HeapInfo(used_bytes=heap_bytes) if heap_bytes is not None else None,
            dom=DomInfo(mutations=self.mutation_count),
            debug=DebugInfo(
                last_mutation_at=self.last_mutation_at,
                pending=self.pending_count,
                settled=self.settled,
            ),
        )

    def _schedule_check(self, now: float) -> None:
        if self.check_due is None:
            self.check_due = now + self.check_delay_ms + 2 * self.frame_ms


@dataclass(frozen=True)
class _Event:
    kind: str
    at: float
    args: tuple[object, ...] = ()


@dataclass(frozen=True)
class _Query:
    kind: str
    reply: Future[object] = field(default_factory=Future)


_Message = Union[_Event, _Query, None]


class SettleMonitor:
    """Single-threaded owner of a ``SettleTracker``.

    Notifications are queued and timestamped when sent; queries block
    until the monitor thread answers them. Use ``attach()``/``detach()``
    or the context manager to control the thread.
    """

    _tracker: SettleTracker
    _clock: Callable[[], float]
    _heap_probe: Callable[[], float | None] | None
    _query_timeout: float
    _inbox: queue.Queue[_Message]
    _thread: Thread | None

    def __init__(
        self,
        quiet_threshold_ms: float = QUIET_THRESHOLD_MS,
        check_delay_ms: float = CHECK_DELAY_MS,
        frame_ms: float = FRAME_MS,
        clock: Callable[[], float] | None = None,
        heap_probe: Callable[[], float | None] | None = None,
        query_timeout: float = 5.0,
    ) -> None:
        """Initialize a detached monitor.

        Args:
            quiet_threshold_ms: Minimum mutation-free time before settling
            check_delay_ms: Delay before a scheduled settle check runs
            frame_ms: Duration of one rendering frame
            clock: Millisecond clock; defaults to time since construction
            heap_probe: Returns heap usage in bytes, or None if unknown
            query_timeout: Seconds to wait for a query reply

        """
        self._tracker = SettleTracker(quiet_threshold_ms, check_delay_ms, frame_ms)
        if clock is None:
            origin = time.monotonic()
            clock = lambda: (time.monotonic() - origin) * 1000  # noqa: E731
        self._clock = clock
        self._heap_probe = heap_probe
        self._query_timeout = query_timeout
        self._inbox = queue.Queue()
        self._thread = None

    @property
    def attached(self) -> bool:
        """Return whether the monitor thread is running."""
        return self._thread is not None

    @property
    def frame_ms(self) -> float:
        """Return the configured frame duration in milliseconds."""
        return self._tracker.frame_ms

    def now(self) -> float:
        """Return the monitor clock in milliseconds."""
        return self._clock()

    def attach(self) -> Self:
        """Start the monitor thread."""
        if self._thread is None:
            self._thread = Thread(target=self._loop, name="settle-monitor", daemon=True)
            self._thread.start()
        return self

    def detach(self) -> None:
        """Stop the monitor thread after draining queued messages."""
        if self._thread is None:
            return
        self._inbox.put(None)
        self._thread.join(timeout=self._query_timeout)
        self._thread = None

    def __enter__(self) -> Self:
        """Context manager entry."""
        return self.attach()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit."""
        self.detach()

    def mark_work_start(self) -> None:
        """Report that logical work started."""
        self._post("work_start")

    def mark_work_end(self) -> None:
        """Report that logical work ended."""
        self._post("work_end")

    def notify_mutation(self) -> None:
        """Report a structural change of the rendered output."""
        self._post("mutation")

    def notify_long_task(self, start_time: float, duration: float) -> None:
        """Report a unit of work that exceeded the long-task threshold."""
        self._post("long_task", start_time, duration)

    def mark(self, name: str, start_mark: str | None = None) -> None:
        """Record a named mark, paired with ``start_mark`` if given."""
        self._post("mark", name, start_mark)

    def force_settled(self) -> None:
        """Set the settled flag unconditionally."""
        self._post("force_settled")

    def debug_state(self) -> DebugState:
        """Return the current counters."""
        result = self._ask("debug_state")
        assert isinstance(result, DebugState)  # noqa: S101
        return result

    def collect(self) -> PerfSample:
        """Return a snapshot of the recorded marks, long tasks and counters."""
        result = self._ask("collect")
        assert isinstance(result, PerfSample)  # noqa: S101
        return result

    @property
    def settled(self) -> bool:
        """Return the settled flag."""
        return self.debug_state().settled

    def _post(self, kind: str, *args: object) -> None:
        if self._thread is None:
            msg = f"Cannot send '{kind}' to a detached monitor"
            raise MonitorDetachedError(msg)
        self._inbox.put(_Event(kind, self.now(), args))

    def _ask(self, kind: str) -> object:
        if self._thread is None:
            msg = f"Cannot query '{kind}' on a detached monitor"
            raise MonitorDetachedError(msg)
        query = _Query(kind)
        self._inbox.put(query)
        return query.reply.result(timeout=self._query_timeout)

    def _loop(self) -> None:
        tracker = self._tracker
        while True:
            timeout = None
            if tracker.check_due is not None:
                timeout = max(0.0, (tracker.check_due - self.now()) / 1000)

            try:
                message = self._inbox.get(timeout=timeout)
            except queue.Empty:
                _ = tracker.advance(self.now())
                continue

            if message is None:
                return

            if isinstance(message, _Event):
                # Checks due before the event happened see the old state
                _ = tracker.advance(message.at)
                try:
                    self._apply(message)
                except Exception as exc:
                    logger.exception("Monitor failed to apply %s", message.kind, exc_info=exc)
                _ = tracker.advance(self.now())
            else:
                _ = tracker.advance(self.now())
                self._answer(message)

    def _apply(self, event: _Event) -> None:
        tracker = self._tracker
        if event.kind == "work_start":
            tracker.work_start(event.at)
        elif event.kind == "work_end":
            tracker.work_end(event.at)
        elif event.kind == "mutation":
            tracker.observe_mutation(event.at)
        elif event.kind == "long_task":
            start_time, duration = event.args
            tracker.observe_long_task(float(start_time), float(duration))  # type: ignore[arg-type]
        elif event.kind == "mark":
            name, start_mark = event.args
            _ = tracker.record_mark(str(name), event.at, start_mark)  # type: ignore[arg-type]
        elif event.kind == "force_settled":
            tracker.force_settled()
        else:
            msg = f"Unknown monitor event: {event.kind}"
            raise ValueError(msg)

    def _answer(self, query: _Query) -> None:
        try:
            if query.kind == "debug_state":
                query.reply.set_result(self._tracker.debug_state(self.now()))
            elif query.kind == "collect":
                heap = self._heap_probe() if self._heap_probe is not None else None
                query.reply.set_result(self._tracker.snapshot(heap))
            else:
                msg = f"Unknown monitor query: {query.kind}"
                raise ValueError(msg)
        except Exception as exc:  # noqa: BLE001
            query.reply.set_exception(exc)
