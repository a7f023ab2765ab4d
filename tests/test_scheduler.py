"""
Tests for tick schedulers.
"""

import threading

from breath_pacer.core.scheduler import ManualTickScheduler, ThreadingTickScheduler


class TestManualTickScheduler:
    """Virtual clock."""

    def test_fires_in_due_order(self):
        scheduler = ManualTickScheduler()
        fired = []
        scheduler.call_later(2.0, lambda: fired.append('b'))
        scheduler.call_later(1.0, lambda: fired.append('a'))
        assert scheduler.advance(1.5) == 1
        assert fired == ['a']
        scheduler.advance(1.0)
        assert fired == ['a', 'b']
        assert scheduler.now == 2.5

    def test_cancelled_never_fires(self):
        scheduler = ManualTickScheduler()
        fired = []
        handle = scheduler.call_later(1.0, lambda: fired.append(1))
        handle.cancel()
        assert scheduler.pending == 0
        scheduler.advance(5)
        assert fired == []

    def test_chained_callbacks_inside_window(self):
        scheduler = ManualTickScheduler()
        times = []

        def tick():
            times.append(scheduler.now)
            scheduler.call_later(0.1, tick)

        scheduler.call_later(0.1, tick)
        scheduler.advance(1.0)
        assert len(times) == 10
        assert times[-1] == 1.0

    def test_clock_is_virtual(self):
        scheduler = ManualTickScheduler()
        scheduler.advance(2.5)
        assert scheduler.clock() == 2.5

    def test_run_next(self):
        scheduler = ManualTickScheduler()
        scheduler.call_later(3.0, lambda: None)
        assert scheduler.run_next() == 3.0
        assert scheduler.run_next() is None


class TestThreadingTickScheduler:
    """Wall clock."""

    def test_callback_runs(self):
        scheduler = ThreadingTickScheduler()
        done = threading.Event()
        scheduler.call_later(0.01, done.set)
        assert done.wait(2.0)

    def test_cancel_prevents_call(self):
        scheduler = ThreadingTickScheduler()
        fired = threading.Event()
        handle = scheduler.call_later(0.2, fired.set)
        handle.cancel()
        assert handle.cancelled
        assert not fired.wait(0.4)

    def test_callback_errors_are_contained(self):
        scheduler = ThreadingTickScheduler()
        done = threading.Event()

        def broken():
            raise RuntimeError("tick bug")

        scheduler.call_later(0.01, broken)
        scheduler.call_later(0.05, done.set)
        assert done.wait(2.0)
        scheduler.shutdown()

    def test_clock_is_monotonic(self):
        scheduler = ThreadingTickScheduler()
        first = scheduler.clock()
        assert scheduler.clock() >= first
