"""
Multi-timeframe confirmation with break-of-structure.
A trend is confirmed only when every configured timeframe agrees.
"""

from __future__ import annotations
from typing import Sequence

import pandas as pd

from autotrader.core.errors import InsufficientData
from autotrader.core.types import TrendSignal, TrendState
from autotrader.indicators import break_of_structure, high_low_extremes
from autotrader.strategies.base import BaseStrategy, MarketSnapshot, side_for


def close_trend(bars: pd.DataFrame, lookback: int) -> TrendState:
    """Compare the latest close with the close `lookback - 1` bars earlier."""
    if len(bars) < lookback:
        raise InsufficientData(
            f"trend over {lookback} bars, got {len(bars)}", required=lookback, available=len(bars)
        )
    closes = bars["close"].iloc[-lookback:]
    first, last = float(closes.iloc[0]), float(closes.iloc[-1])
    if last > first:
        return TrendState.UP
    if last < first:
        return TrendState.DOWN
    return TrendState.NEUTRAL


class MultiTimeframeStrategy(BaseStrategy):
    """
    Per-timeframe trend from closes; NEUTRAL unless all agree.
    With require_bos the live price must also break the recent high (UP)
    or low (DOWN) of the first timeframe.
    """

    name = "multi_timeframe"

    def __init__(
        self,
        timeframes: Sequence[str] = ("1m", "5m"),
        lookback: int = 5,
        require_bos: bool = True,
        bos_window: int = 10,
    ):
        if len(timeframes) < 1:
            raise ValueError("at least one timeframe is required")
        self.timeframes = tuple(timeframes)
        self.lookback = lookback
        self.require_bos = require_bos
        self.bos_window = bos_window

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        return df.copy()

    def classify(self, snapshot: MarketSnapshot) -> TrendSignal:
        per_tf = {tf: close_trend(snapshot.frame(tf), self.lookback) for tf in self.timeframes}
        labels = set(per_tf.values())
        trend = labels.pop() if len(labels) == 1 else TrendState.NEUTRAL

        extremes = high_low_extremes(snapshot.frame(self.timeframes[0]), self.bos_window)
        bos = break_of_structure(snapshot.price, extremes)
        if trend == TrendState.UP:
            confirmed = snapshot.price > extremes.high
        elif trend == TrendState.DOWN:
            confirmed = snapshot.price < extremes.low
        else:
            confirmed = False

        actionable = trend != TrendState.NEUTRAL and (confirmed or not self.require_bos)
        return TrendSignal(
            trend=trend,
            side=side_for(trend) if actionable else None,
            bos=bos,
            metadata={
                "timeframes": {tf: t.value for tf, t in per_tf.items()},
                "recent_high": extremes.high,
                "recent_low": extremes.low,
            },
        )
