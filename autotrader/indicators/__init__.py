"""Indicators: EMA, SMA, RSI, Bollinger Bands, high/low extremes."""

from autotrader.indicators.library import (
    Extremes,
    bollinger,
    break_of_structure,
    ema,
    high_low_extremes,
    last_value,
    rsi,
    sma,
)

__all__ = [
    "Extremes",
    "bollinger",
    "break_of_structure",
    "ema",
    "high_low_extremes",
    "last_value",
    "rsi",
    "sma",
]
