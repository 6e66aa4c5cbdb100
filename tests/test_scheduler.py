"""Unit tests for engine.scheduler."""

from datetime import datetime, timedelta, timezone

import pytest

from autotrader.core.errors import ConnectivityError
from autotrader.engine.scheduler import FixedInterval, Scheduler, WallClockAligned, backoff_delay


class FakeClock:
    """Clock whose wait() advances time instead of sleeping."""

    def __init__(self, start, cycle_duration=0.0):
        self.now = start
        self.cycle_duration = timedelta(seconds=cycle_duration)
        self.waits = []

    def __call__(self):
        return self.now

    def wait(self, seconds):
        self.waits.append(seconds)
        self.now += timedelta(seconds=seconds)
        return False


def _recorder(clock, fail_with=None):
    fired = []

    def cycle(now):
        fired.append(now)
        clock.now += clock.cycle_duration
        if fail_with is not None and len(fired) <= fail_with[1]:
            raise fail_with[0]
    return fired, cycle


def test_aligned_cycles_land_on_boundaries_without_drift():
    clock = FakeClock(datetime(2024, 1, 1, 10, 7, 30, tzinfo=timezone.utc), cycle_duration=2.7)
    fired, cycle = _recorder(clock)
    Scheduler(cycle, WallClockAligned(5), clock=clock, wait=clock.wait).run(max_cycles=4)
    assert fired == [
        datetime(2024, 1, 1, 10, 10, tzinfo=timezone.utc),
        datetime(2024, 1, 1, 10, 15, tzinfo=timezone.utc),
        datetime(2024, 1, 1, 10, 20, tzinfo=timezone.utc),
        datetime(2024, 1, 1, 10, 25, tzinfo=timezone.utc),
    ]
    assert clock.waits[0] == pytest.approx(150.0)
    assert clock.waits[1] == pytest.approx(300.0 - 2.7)


def test_fixed_interval_runs_immediately_then_after_completion():
    start = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    clock = FakeClock(start, cycle_duration=1.0)
    fired, cycle = _recorder(clock)
    Scheduler(cycle, FixedInterval(10), clock=clock, wait=clock.wait).run(max_cycles=3)
    assert fired == [start, start + timedelta(seconds=11), start + timedelta(seconds=22)]


def test_failing_cycle_does_not_stop_the_loop():
    clock = FakeClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
    fired, cycle = _recorder(clock, fail_with=(RuntimeError("boom"), 2))
    sched = Scheduler(cycle, FixedInterval(60), clock=clock, wait=clock.wait)
    assert sched.run(max_cycles=4) == 4
    assert len(fired) == 4
    assert sched.consecutive_failures == 0


def test_connectivity_errors_back_off_then_reset():
    clock = FakeClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
    fired, cycle = _recorder(clock, fail_with=(ConnectivityError("down"), 3))
    sched = Scheduler(
        cycle, FixedInterval(1), clock=clock, wait=clock.wait,
        base_backoff_seconds=5, max_backoff_seconds=15,
    )
    sched.run(max_cycles=5)
    gaps = [(b - a).total_seconds() for a, b in zip(fired, fired[1:])]
    assert gaps == [5.0, 10.0, 15.0, 1.0]
    assert sched.consecutive_failures == 0


def test_backoff_delay():
    assert backoff_delay(0, 5, 300) == 0.0
    assert backoff_delay(1, 5, 300) == 5
    assert backoff_delay(3, 5, 300) == 20
    assert backoff_delay(10, 5, 300) == 300


def test_stop_before_first_cycle():
    clock = FakeClock(datetime(2024, 1, 1, 10, 1, tzinfo=timezone.utc))
    fired, cycle = _recorder(clock)
    sched = Scheduler(cycle, WallClockAligned(5), clock=clock, wait=lambda s: True)
    assert sched.run() == 0
    assert fired == []


def test_stop_event_ends_loop():
    clock = FakeClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
    sched = None

    def cycle(now):
        sched.stop()

    sched = Scheduler(cycle, FixedInterval(1), clock=clock, wait=clock.wait)
    assert sched.run() == 1


def test_cadence_validation():
    with pytest.raises(ValueError):
        FixedInterval(0)
    with pytest.raises(ValueError):
        WallClockAligned(0)
