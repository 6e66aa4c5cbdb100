"""Engine: one evaluation cycle per instrument and the scheduler that drives it."""

from autotrader.engine.scheduler import FixedInterval, Scheduler, WallClockAligned, backoff_delay
from autotrader.engine.trader import ClosedPosition, CycleReport, TradingEngine

__all__ = [
    "ClosedPosition",
    "CycleReport",
    "FixedInterval",
    "Scheduler",
    "TradingEngine",
    "WallClockAligned",
    "backoff_delay",
]
