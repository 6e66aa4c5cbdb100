"""
Cycle scheduler: one long-lived loop per instrument.

Two cadences:
- FixedInterval: next cycle `seconds` after the previous one finished.
- WallClockAligned: next cycle on the next N-minute boundary, recomputed
  from the clock after every cycle so skew never accumulates.

A failing cycle is logged and the loop re-arms. Consecutive
ConnectivityErrors push the next cycle out by a capped exponential backoff.
"""

from __future__ import annotations
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from autotrader.core.errors import ConnectivityError
from autotrader.utils.timeframes import next_boundary

logger = logging.getLogger("autotrader.scheduler")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FixedInterval:
    def __init__(self, seconds: float):
        if seconds <= 0:
            raise ValueError("interval must be positive")
        self.seconds = seconds

    def first_fire(self, now: datetime) -> datetime:
        return now

    def next_fire(self, after: datetime) -> datetime:
        return after + timedelta(seconds=self.seconds)


class WallClockAligned:
    def __init__(self, minutes: int):
        if minutes < 1:
            raise ValueError("minutes must be >= 1")
        self.minutes = minutes

    def first_fire(self, now: datetime) -> datetime:
        return next_boundary(now, self.minutes)

    def next_fire(self, after: datetime) -> datetime:
        return next_boundary(after, self.minutes)


def backoff_delay(failures: int, base: float, cap: float) -> float:
    """base * 2**(failures-1), capped; 0 with no failures."""
    if failures <= 0:
        return 0.0
    return min(base * (2 ** (failures - 1)), cap)


class Scheduler:
    """
    Runs `cycle(now)` forever (or max_cycles times) on the given cadence.
    `wait(seconds)` returns True when the loop should stop; by default it
    waits on the stop event, so stop() interrupts a sleep immediately.
    """

    def __init__(
        self,
        cycle: Callable[[datetime], object],
        cadence,
        name: str = "",
        clock: Callable[[], datetime] = utc_now,
        stop_event: Optional[threading.Event] = None,
        wait: Optional[Callable[[float], bool]] = None,
        base_backoff_seconds: float = 5.0,
        max_backoff_seconds: float = 300.0,
    ):
        self.cycle = cycle
        self.cadence = cadence
        self.name = name
        self.clock = clock
        self.stop_event = stop_event or threading.Event()
        self._wait = wait or self.stop_event.wait
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.consecutive_failures = 0

    def stop(self) -> None:
        self.stop_event.set()

    def run_once(self) -> bool:
        """Run one cycle, absorbing its errors. Returns True on success."""
        now = self.clock()
        try:
            self.cycle(now)
        except ConnectivityError as e:
            self.consecutive_failures += 1
            logger.warning(
                "%s cycle at %s: connectivity error (%d in a row): %s",
                self.name, now.isoformat(), self.consecutive_failures, e,
            )
            return False
        except Exception as e:
            logger.exception("%s cycle at %s failed: %s", self.name, now.isoformat(), e)
            return False
        self.consecutive_failures = 0
        return True

    def next_fire(self) -> datetime:
        now = self.clock()
        fire_at = self.cadence.next_fire(now)
        delay = backoff_delay(self.consecutive_failures, self.base_backoff_seconds, self.max_backoff_seconds)
        if delay:
            fire_at = max(fire_at, now + timedelta(seconds=delay))
            logger.info("%s backing off %.0fs, next cycle %s", self.name, delay, fire_at.isoformat())
        return fire_at

    def run(self, max_cycles: Optional[int] = None) -> int:
        """Loop until stopped. Returns the number of cycles run."""
        cycles = 0
        fire_at = self.cadence.first_fire(self.clock())
        logger.info("%s scheduler started, first cycle %s", self.name, fire_at.isoformat())
        while not self.stop_event.is_set():
            delay = (fire_at - self.clock()).total_seconds()
            if delay > 0 and self._wait(delay):
                break
            if self.stop_event.is_set():
                break
            self.run_once()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            fire_at = self.next_fire()
        logger.info("%s scheduler stopped after %d cycles", self.name, cycles)
        return cycles
