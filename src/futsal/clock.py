"""
Match clock transitions and the background ticker that drives them.

All times are epoch milliseconds. ``remaining_ms`` is the countdown value at
the last pause or tick; ``started_at`` is set only while the clock runs.
"""
import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Optional

from futsal.models import DEFAULT_PERIOD_MS, Match

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def start_pause(match: Match, now: int) -> Match:
    """Start a stopped clock, or pause a running one."""
    if match.started_at is None:
        return replace(match, started_at=now)
    elapsed = now - match.started_at
    return replace(match, started_at=None, remaining_ms=max(0, match.remaining_ms - elapsed))


def tick(match: Match, now: int) -> Match:
    """Count down a running clock and move its reference point to ``now``."""
    if match.started_at is None:
        return match
    remaining = max(0, match.remaining_ms - (now - match.started_at))
    return replace(match, remaining_ms=remaining, started_at=now if remaining > 0 else None)


def reset(match: Match, period_ms: int = DEFAULT_PERIOD_MS) -> Match:
    return replace(match, started_at=None, remaining_ms=period_ms)


def next_half(match: Match, period_ms: int = DEFAULT_PERIOD_MS) -> Match:
    """Switch halves (1 <-> 2) with a stopped clock at the full period."""
    return replace(
        match,
        half=2 if match.half == 1 else 1,
        started_at=None,
        remaining_ms=period_ms,
    )


def format_clock(ms: int) -> str:
    """Format milliseconds as MM:SS."""
    total = max(0, ms // 1000)
    return f"{total // 60:02d}:{total % 60:02d}"


class ClockTicker:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, callback: Callable[[], None], interval: float = 1.0):
        self.callback = callback
        self.interval = interval
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "ClockTicker":
        if self.running:
            return self
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name='clock-ticker', daemon=True)
        self._thread.start()
        return self

    def cancel(self, timeout: Optional[float] = None):
        self._stopped.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None

    def _run(self):
        while not self._stopped.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception('Clock tick failed')

    def __repr__(self):
        return f"ClockTicker(interval={self.interval}, running={self.running})"
