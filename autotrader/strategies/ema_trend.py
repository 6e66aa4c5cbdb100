"""
EMA trend classifiers.

EmaTrendStrategy: price vs one or more EMAs, optional pullback filter.
EmaStackStrategy: fast > medium > slow ordering, optional fresh-cross requirement.
"""

from __future__ import annotations
from typing import Optional, Sequence

import pandas as pd

from autotrader.core.errors import InsufficientData
from autotrader.core.types import TrendSignal, TrendState
from autotrader.indicators import ema, last_value
from autotrader.strategies.base import BaseStrategy, MarketSnapshot, side_for


def _ema_column(period: int) -> str:
    return f"ema_{period}"


class EmaTrendStrategy(BaseStrategy):
    """
    UP when close is above every configured EMA, DOWN when below every one.
    With pullback_threshold > 0 the signal is actionable only while close is
    within the threshold of the pullback EMA (first period by default).
    """

    name = "ema_trend"

    def __init__(
        self,
        periods: Sequence[int] = (50,),
        pullback_ema: Optional[int] = None,
        pullback_threshold: float = 0.0,
    ):
        if not periods:
            raise ValueError("at least one EMA period is required")
        self.periods = tuple(periods)
        self.pullback_ema = pullback_ema or self.periods[0]
        self.pullback_threshold = pullback_threshold

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        for period in sorted(set(self.periods) | {self.pullback_ema}):
            df[_ema_column(period)] = ema(df["close"], period)
        return df

    def classify(self, snapshot: MarketSnapshot) -> TrendSignal:
        close = snapshot.last_close
        levels = {p: last_value(snapshot.bars[_ema_column(p)], _ema_column(p)) for p in self.periods}
        if all(close > v for v in levels.values()):
            trend = TrendState.UP
        elif all(close < v for v in levels.values()):
            trend = TrendState.DOWN
        else:
            trend = TrendState.NEUTRAL

        pullback_level = last_value(snapshot.bars[_ema_column(self.pullback_ema)], "pullback ema")
        distance = abs(close - pullback_level)
        near = self.pullback_threshold <= 0 or distance < self.pullback_threshold
        return TrendSignal(
            trend=trend,
            side=side_for(trend) if near else None,
            metadata={
                "close": close,
                "emas": levels,
                "pullback_distance": distance,
            },
        )


class EmaStackStrategy(BaseStrategy):
    """
    UP when EMAs are strictly ordered fast > ... > slow, DOWN on the strict
    reverse, NEUTRAL (no-trade zone) otherwise. With require_cross the
    ordering must be new on the latest bar.
    """

    name = "ema_stack"

    def __init__(self, periods: Sequence[int] = (8, 21, 55), require_cross: bool = False):
        if len(periods) < 2:
            raise ValueError("EMA stack needs at least two periods")
        self.periods = tuple(periods)
        self.require_cross = require_cross

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        for period in self.periods:
            df[_ema_column(period)] = ema(df["close"], period)
        return df

    def _state_at(self, bars: pd.DataFrame, idx: int) -> TrendState:
        values = [bars[_ema_column(p)].iloc[idx] for p in self.periods]
        if any(pd.isna(v) for v in values):
            raise InsufficientData("EMA stack undefined at requested bar")
        if all(a > b for a, b in zip(values, values[1:])):
            return TrendState.UP
        if all(a < b for a, b in zip(values, values[1:])):
            return TrendState.DOWN
        return TrendState.NEUTRAL

    def classify(self, snapshot: MarketSnapshot) -> TrendSignal:
        bars = snapshot.bars
        if bars.empty:
            raise InsufficientData("snapshot has no bars")
        trend = self._state_at(bars, -1)
        crossed = True
        if self.require_cross:
            if len(bars) < 2:
                raise InsufficientData("EMA cross needs two bars")
            crossed = self._state_at(bars, -2) != trend
        return TrendSignal(
            trend=trend,
            side=side_for(trend) if crossed else None,
            metadata={
                "emas": {p: float(bars[_ema_column(p)].iloc[-1]) for p in self.periods},
                "crossed": crossed,
            },
        )
