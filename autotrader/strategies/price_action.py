"""Indicator-free classifiers: last-close momentum and side alternation."""

from __future__ import annotations

import pandas as pd

from autotrader.core.errors import InsufficientData
from autotrader.core.types import SignalSide, TrendSignal, TrendState
from autotrader.strategies.base import BaseStrategy, MarketSnapshot, side_for


class MomentumStrategy(BaseStrategy):
    """UP if the latest close is above the previous one, DOWN if below."""

    name = "momentum"

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        return df.copy()

    def classify(self, snapshot: MarketSnapshot) -> TrendSignal:
        closes = snapshot.bars["close"]
        if len(closes) < 2:
            raise InsufficientData("momentum needs two closes", required=2, available=len(closes))
        last, prev = float(closes.iloc[-1]), float(closes.iloc[-2])
        if last > prev:
            trend = TrendState.UP
        elif last < prev:
            trend = TrendState.DOWN
        else:
            trend = TrendState.NEUTRAL
        return TrendSignal(trend=trend, side=side_for(trend), metadata={"close": last, "prev_close": prev})


class AlternatingStrategy(BaseStrategy):
    """Always actionable: the opposite of the last entry side, BUY first."""

    name = "alternating"

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        return df.copy()

    def classify(self, snapshot: MarketSnapshot) -> TrendSignal:
        side = snapshot.last_action.opposite if snapshot.last_action else SignalSide.LONG
        return TrendSignal(trend=TrendState.NEUTRAL, side=side)
