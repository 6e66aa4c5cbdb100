"""
Core data types for bars, quotes, positions, signals and trades.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class SignalSide(str, Enum):
    LONG = "BUY"
    SHORT = "SELL"

    @property
    def opposite(self) -> "SignalSide":
        return SignalSide.SHORT if self is SignalSide.LONG else SignalSide.LONG


class TrendState(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class Bar:
    """OHLCV candle. Immutable once recorded."""
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class Quote:
    """Top of book."""
    bid: float
    ask: float

    @property
    def spread(self) -> float:
        return max(0.0, self.ask - self.bid)

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2.0

    def entry_price(self, side: SignalSide) -> float:
        """Price a market order on `side` fills at."""
        return self.ask if side == SignalSide.LONG else self.bid

    def exit_price(self, side: SignalSide) -> float:
        """Price a position on `side` is closed at."""
        return self.bid if side == SignalSide.LONG else self.ask


@dataclass(frozen=True)
class TrendSignal:
    """Classifier output. `side` is set only when the signal is actionable."""
    trend: TrendState
    side: Optional[SignalSide] = None
    bos: bool = False
    overbought: bool = False
    oversold: bool = False
    band: Optional[str] = None  # "upper" | "lower"
    metadata: dict = field(default_factory=dict)

    @property
    def actionable(self) -> bool:
        return self.side is not None


@dataclass
class Position:
    """Open position as reported by the broker. Read each cycle, never owned."""
    id: str
    symbol: str
    side: SignalSide
    volume: float
    entry_price: float
    unrealized_pnl: float = 0.0
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    opened_at: Optional[datetime] = None


@dataclass
class Trade:
    """Closed trade for analytics."""
    symbol: str
    side: SignalSide
    quantity: float
    entry_price: float
    exit_price: float
    pnl: float
    entry_time: Optional[datetime]
    exit_time: Optional[datetime]
    exit_reason: str  # "stop_loss" | "take_profit" | "trailing_peak" | "aggregate_target" | ...
    position_id: str = ""
