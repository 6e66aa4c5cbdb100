"""
Mean-reversion classifiers built on Bollinger Bands and RSI.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from autotrader.core.errors import InsufficientData
from autotrader.core.types import SignalSide, TrendSignal, TrendState
from autotrader.indicators import bollinger, last_value, rsi
from autotrader.strategies.base import BaseStrategy, MarketSnapshot


def average_change_trend(closes: pd.Series, lookback: int) -> TrendState:
    """Sign of the mean close-to-close change over the last `lookback` closes."""
    tail = closes.iloc[-lookback:].to_numpy(dtype=float)
    if len(tail) < 2:
        raise InsufficientData("trend needs at least two closes", required=2, available=len(tail))
    mean_change = float(np.diff(tail).mean())
    if mean_change > 0:
        return TrendState.UP
    if mean_change < 0:
        return TrendState.DOWN
    return TrendState.NEUTRAL


class BollingerRsiStrategy(BaseStrategy):
    """
    Long: uptrend, close below the lower band, RSI oversold.
    Short: downtrend, close above the upper band, RSI overbought.
    require_trend=False trades band penetration alone; use_rsi=False drops the RSI filter.
    """

    name = "bollinger_rsi"

    def __init__(
        self,
        bb_period: int = 20,
        bb_std: float = 2.0,
        rsi_period: int = 14,
        rsi_oversold: float = 30.0,
        rsi_overbought: float = 70.0,
        trend_lookback: int = 200,
        require_trend: bool = True,
        use_rsi: bool = True,
    ):
        self.bb_period = bb_period
        self.bb_std = bb_std
        self.rsi_period = rsi_period
        self.rsi_oversold = rsi_oversold
        self.rsi_overbought = rsi_overbought
        self.trend_lookback = trend_lookback
        self.require_trend = require_trend
        self.use_rsi = use_rsi

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        bands = bollinger(df["close"], self.bb_period, self.bb_std)
        df["bb_middle"] = bands["middle"].to_numpy()
        df["bb_upper"] = bands["upper"].to_numpy()
        df["bb_lower"] = bands["lower"].to_numpy()
        df["rsi"] = rsi(df["close"], self.rsi_period).to_numpy()
        return df

    def classify(self, snapshot: MarketSnapshot) -> TrendSignal:
        bars = snapshot.bars
        close = snapshot.last_close
        upper = last_value(bars["bb_upper"], "bb_upper")
        lower = last_value(bars["bb_lower"], "bb_lower")
        rsi_now = last_value(bars["rsi"], "rsi")
        trend = average_change_trend(bars["close"], self.trend_lookback)

        band = "upper" if close > upper else "lower" if close < lower else None
        overbought = rsi_now >= self.rsi_overbought
        oversold = rsi_now <= self.rsi_oversold

        long_ok = band == "lower" and (oversold or not self.use_rsi)
        short_ok = band == "upper" and (overbought or not self.use_rsi)
        if self.require_trend:
            long_ok = long_ok and trend == TrendState.UP
            short_ok = short_ok and trend == TrendState.DOWN
        side = SignalSide.LONG if long_ok else SignalSide.SHORT if short_ok else None

        return TrendSignal(
            trend=trend,
            side=side,
            overbought=overbought,
            oversold=oversold,
            band=band,
            metadata={
                "close": close,
                "bb_middle": last_value(bars["bb_middle"], "bb_middle"),
                "bb_upper": upper,
                "bb_lower": lower,
                "rsi": rsi_now,
            },
        )


class RsiReversalStrategy(BaseStrategy):
    """
    Oversold RSI confirmed by a higher close -> long.
    Overbought RSI confirmed by a lower close -> short.
    """

    name = "rsi_reversal"

    def __init__(self, rsi_period: int = 14, rsi_oversold: float = 30.0, rsi_overbought: float = 70.0):
        self.rsi_period = rsi_period
        self.rsi_oversold = rsi_oversold
        self.rsi_overbought = rsi_overbought

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        df["rsi"] = rsi(df["close"], self.rsi_period).to_numpy()
        return df

    def classify(self, snapshot: MarketSnapshot) -> TrendSignal:
        bars = snapshot.bars
        if len(bars) < 2:
            raise InsufficientData("reversal needs two closes", required=2, available=len(bars))
        rsi_now = last_value(bars["rsi"], "rsi")
        close, prev = float(bars["close"].iloc[-1]), float(bars["close"].iloc[-2])
        trend = TrendState.UP if close > prev else TrendState.DOWN if close < prev else TrendState.NEUTRAL
        oversold = rsi_now <= self.rsi_oversold
        overbought = rsi_now >= self.rsi_overbought
        side = None
        if oversold and trend == TrendState.UP:
            side = SignalSide.LONG
        elif overbought and trend == TrendState.DOWN:
            side = SignalSide.SHORT
        return TrendSignal(
            trend=trend,
            side=side,
            overbought=overbought,
            oversold=oversold,
            metadata={"rsi": rsi_now, "close": close},
        )
