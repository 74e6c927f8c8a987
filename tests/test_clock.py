"""
Tests for the match clock.
"""
import pytest
import sys
import os
import threading

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from futsal import clock
from futsal.models import Match


@pytest.fixture
def match():
    return Match(id='m1', left_team_id='a', right_team_id='b', remaining_ms=60000)


class TestTransitions:
    """Start/pause, tick, reset and half switching."""

    def test_tick_after_ten_seconds(self, match):
        running = clock.start_pause(match, now=1_000)
        assert running.started_at == 1_000

        ticked = clock.tick(running, now=11_000)
        assert ticked.remaining_ms == 50_000
        assert ticked.started_at == 11_000

    def test_tick_clamps_and_stops(self, match):
        running = clock.start_pause(match, now=0)
        ticked = clock.tick(running, now=90_000)
        assert ticked.remaining_ms == 0
        assert ticked.started_at is None

    def test_tick_ignores_stopped_clock(self, match):
        assert clock.tick(match, now=5_000) is match

    def test_pause_keeps_remaining(self, match):
        running = clock.start_pause(match, now=0)
        paused = clock.start_pause(running, now=15_000)
        assert paused.started_at is None
        assert paused.remaining_ms == 45_000

    def test_consecutive_ticks_do_not_drift(self, match):
        state = clock.start_pause(match, now=0)
        for second in range(1, 11):
            state = clock.tick(state, now=second * 1000)
        assert state.remaining_ms == 50_000

    def test_reset(self, match):
        running = clock.start_pause(match, now=0)
        reset = clock.reset(running, period_ms=120_000)
        assert reset.started_at is None
        assert reset.remaining_ms == 120_000

    def test_next_half_toggles(self, match):
        second = clock.next_half(clock.start_pause(match, now=0), period_ms=30_000)
        assert second.half == 2
        assert second.started_at is None
        assert second.remaining_ms == 30_000
        assert clock.next_half(second).half == 1

    def test_format_clock(self):
        assert clock.format_clock(20 * 60 * 1000) == '20:00'
        assert clock.format_clock(61_999) == '01:01'
        assert clock.format_clock(0) == '00:00'


@pytest.mark.slow
class TestClockTicker:
    """The background ticker."""

    def test_calls_back_until_cancelled(self):
        fired = threading.Event()
        ticker = clock.ClockTicker(fired.set, interval=0.01).start()
        try:
            assert fired.wait(2)
            assert ticker.running
        finally:
            ticker.cancel(timeout=2)
        assert not ticker.running

    def test_failing_callback_keeps_running(self):
        calls = []
        done = threading.Event()

        def callback():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            done.set()

        ticker = clock.ClockTicker(callback, interval=0.01)
        ticker.start()
        try:
            assert done.wait(2)
        finally:
            ticker.cancel(timeout=2)
