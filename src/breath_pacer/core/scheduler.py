"""
Tick Scheduling - Cancellable one-shot timers
==============================================

The session never runs a free-running interval. Each tick schedules the
next one when it completes, aimed at a fixed deadline on the scheduler's
clock, so ticks cannot overlap and processing time does not accumulate.
Every state change that stops ticking cancels the pending handle.

Two schedulers:
- ThreadingTickScheduler: wall clock, ``threading.Timer`` based
- ManualTickScheduler: virtual clock advanced explicitly (tests, simulation)
"""

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TickHandle(ABC):
    """Pending callback that can be cancelled."""

    @abstractmethod
    def cancel(self):
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class TickScheduler(ABC):
    """Abstract base for tick schedulers"""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TickHandle:
        """
        Run ``callback`` once after ``delay`` seconds.

        Returns:
            Handle whose ``cancel()`` prevents the call if it has not run yet.
        """
        pass

    @abstractmethod
    def clock(self) -> float:
        """Current time on this scheduler's clock, in seconds."""
        pass

    def shutdown(self):
        """Release scheduler resources"""
        pass


# ══════════════════════════════════════════════════════════════════════════════
# THREADED (WALL CLOCK)
# ══════════════════════════════════════════════════════════════════════════════

class _TimerHandle(TickHandle):

    def __init__(self, timer: threading.Timer):
        self._timer = timer
        self._cancelled = False

    def cancel(self):
        self._cancelled = True
        self._timer.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ThreadingTickScheduler(TickScheduler):
    """Wall-clock scheduler; callbacks run on daemon timer threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._timers: List[threading.Timer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> TickHandle:
        timer = threading.Timer(delay, self._run, args=(callback,))
        timer.daemon = True
        with self._lock:
            self._timers = [t for t in self._timers if t.is_alive()]
            self._timers.append(timer)
        timer.start()
        return _TimerHandle(timer)

    def clock(self) -> float:
        return time.monotonic()

    @staticmethod
    def _run(callback: Callable[[], None]):
        try:
            callback()
        except Exception:
            logger.exception("Tick callback failed")

    def shutdown(self):
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()


# ══════════════════════════════════════════════════════════════════════════════
# MANUAL (VIRTUAL CLOCK)
# ══════════════════════════════════════════════════════════════════════════════

class _ManualHandle(TickHandle):

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualTickScheduler(TickScheduler):
    """
    Deterministic scheduler driven by ``advance()``.

    Usage:
        scheduler = ManualTickScheduler()
        session = BreathingSession(store, scheduler=scheduler, tick_seconds=1.0)
        session.start()
        scheduler.advance(19)   # fires 19 ticks in order
    """

    def __init__(self):
        self.now = 0.0
        self._queue: List[Tuple[float, int, _ManualHandle, Callable[[], None]]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TickHandle:
        handle = _ManualHandle()
        due = round(self.now + delay, 6)
        heapq.heappush(self._queue, (due, next(self._seq), handle, callback))
        return handle

    def clock(self) -> float:
        return self.now

    @property
    def pending(self) -> int:
        """Number of scheduled, not-cancelled callbacks"""
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, firing every callback that falls due.

        Callbacks scheduled while advancing fire too if they fall inside the
        window. Returns the number of callbacks run.
        """
        target = round(self.now + seconds, 6)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = due
            callback()
            fired += 1
        self.now = target
        return fired

    def run_next(self) -> Optional[float]:
        """Fire only the next pending callback; returns its due time."""
        while self._queue:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = due
            callback()
            return due
        return None

    def shutdown(self):
        self._queue.clear()
