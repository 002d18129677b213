"""Tests for the recurring poll timer."""

import threading
import time

from cloudconvert.utils.poll_scheduler import PollScheduler


class TestPollScheduler:
    """Test the background poll loop."""

    def test_fires_repeatedly_until_stopped(self):
        """Test that the callback runs on the interval and stops with stop()."""
        scheduler = PollScheduler(name="test-poll")
        ticks = []
        fired_twice = threading.Event()

        def callback():
            ticks.append(time.monotonic())
            if len(ticks) >= 2:
                fired_twice.set()

        scheduler.start(0.01, callback)
        assert fired_twice.wait(2.0)

        scheduler.stop()
        time.sleep(0.05)
        count = len(ticks)
        time.sleep(0.1)

        assert len(ticks) == count
        assert not scheduler.is_running
        assert scheduler.stopped

    def test_stop_is_idempotent(self):
        """Test that stop works repeatedly and before start."""
        scheduler = PollScheduler()
        scheduler.stop()
        scheduler.stop()

        assert scheduler.stopped
        assert not scheduler.is_running

    def test_stopped_scheduler_does_not_restart(self):
        """Test that a stopped scheduler ignores start()."""
        scheduler = PollScheduler()
        ticks = []
        scheduler.stop()
        scheduler.start(0.01, lambda: ticks.append(1))
        time.sleep(0.05)

        assert ticks == []
        assert not scheduler.is_running

    def test_double_start_keeps_one_timer(self):
        """Test that a second start() does not spawn another loop."""
        scheduler = PollScheduler()
        first, second = [], []
        scheduler.start(0.01, lambda: first.append(1))
        scheduler.start(0.01, lambda: second.append(1))
        time.sleep(0.05)
        scheduler.stop()

        assert first
        assert second == []

    def test_callback_errors_do_not_stop_polling(self):
        """Test that an exception in one tick does not end the loop."""
        scheduler = PollScheduler()
        calls = []
        recovered = threading.Event()

        def callback():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("refresh blew up")
            recovered.set()

        scheduler.start(0.01, callback)
        try:
            assert recovered.wait(2.0)
        finally:
            scheduler.stop()

    def test_stop_from_inside_callback(self):
        """Test that the callback can stop its own scheduler and is not fired again."""
        scheduler = PollScheduler()
        calls = []
        stopped = threading.Event()

        def callback():
            calls.append(1)
            scheduler.stop()
            stopped.set()

        scheduler.start(0.01, callback)
        assert stopped.wait(2.0)
        time.sleep(0.05)

        assert calls == [1]
        assert not scheduler.is_running
