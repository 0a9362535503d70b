import time

from flask import current_app, has_app_context


class SystemClock:
    """Wall clock in epoch seconds."""

    def now(self) -> float:
        return time.time()


class ManualClock:
    """Clock that only moves when told to. Used by tests and replays."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        self._now += seconds
        return self._now

    def set(self, ts: float) -> None:
        self._now = float(ts)


def get_clock():
    if has_app_context():
        clock = current_app.extensions.get('round_clock')
        if clock is not None:
            return clock
    return SystemClock()


def elapsed_ms(started_at: float, now: float) -> int:
    return max(0, int(round((now - started_at) * 1000)))


def remaining_seconds(started_at: float, timer_seconds: float, now: float) -> float:
    """Seconds left in a round started at ``started_at``; never negative."""
    return max(0.0, float(timer_seconds) - (now - started_at))
