"""Abstract strategy: indicators + trend classification."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

import pandas as pd

from autotrader.core.errors import InsufficientData
from autotrader.core.types import SignalSide, TrendSignal, TrendState


@dataclass(frozen=True)
class MarketSnapshot:
    """
    Everything a classifier may look at for one cycle.
    `bars` already carries the strategy's indicator columns.
    """
    bars: pd.DataFrame
    price: float
    timeframes: Mapping[str, pd.DataFrame] = field(default_factory=dict)
    last_action: Optional[SignalSide] = None

    def frame(self, timeframe: str) -> pd.DataFrame:
        if timeframe not in self.timeframes:
            raise InsufficientData(f"no bars for timeframe {timeframe}")
        return self.timeframes[timeframe]

    @property
    def last_close(self) -> float:
        if self.bars.empty:
            raise InsufficientData("snapshot has no bars")
        return float(self.bars["close"].iloc[-1])


def side_for(trend: TrendState) -> Optional[SignalSide]:
    if trend == TrendState.UP:
        return SignalSide.LONG
    if trend == TrendState.DOWN:
        return SignalSide.SHORT
    return None


class BaseStrategy(ABC):
    """Strategy computes indicators, then classifies a snapshot. No state between calls."""

    name: str = "base"
    # Extra timeframes the engine must fetch into MarketSnapshot.timeframes
    timeframes: Tuple[str, ...] = ()

    @abstractmethod
    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        """Return a copy of the OHLCV DataFrame with indicator columns added."""
        pass

    @abstractmethod
    def classify(self, snapshot: MarketSnapshot) -> TrendSignal:
        """
        Trend label plus auxiliary flags for this snapshot.
        Raises InsufficientData when the snapshot is too short.
        """
        pass
