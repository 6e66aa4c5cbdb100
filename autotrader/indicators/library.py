"""
Technical indicators over an ordered price series.

Every function returns a series aligned 1:1 with its input. Positions before
`period` values have accumulated are NaN, never zero. An input shorter than
`period` raises InsufficientData instead of producing a misleading value.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Union

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from autotrader.core.errors import InsufficientData

Values = Union[pd.Series, np.ndarray, Iterable[float]]


def _as_series(values: Values) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(np.asarray(list(values), dtype=float))


def _require(series: pd.Series, period: int, name: str) -> None:
    if period < 1:
        raise ValueError(f"{name}: period must be >= 1, got {period}")
    if len(series) < period:
        raise InsufficientData(
            f"{name}({period}) needs {period} values, got {len(series)}",
            required=period,
            available=len(series),
        )


def sma(values: Values, period: int) -> pd.Series:
    """Arithmetic mean of the trailing `period` window."""
    s = _as_series(values)
    _require(s, period, "sma")
    return s.rolling(period).mean()


def ema(values: Values, period: int) -> pd.Series:
    """
    Exponential moving average, alpha = 2 / (period + 1).
    Seeded with the simple average of the first `period` values, so the first
    defined output is at index period - 1.
    """
    s = _as_series(values)
    _require(s, period, "ema")
    seeded = s.copy()
    seeded.iloc[: period - 1] = np.nan
    seeded.iloc[period - 1] = s.iloc[:period].mean()
    return seeded.ewm(span=period, adjust=False, ignore_na=True).mean()


def rsi(values: Values, period: int) -> pd.Series:
    """
    RSI over the trailing `period` values (period - 1 deltas), simple averages:
    avg_gain = sum(gains) / period, avg_loss = sum(losses) / period.
    RSI is 100 exactly when the window has no losses.
    """
    if period < 2:
        raise ValueError(f"rsi: period must be >= 2, got {period}")
    s = _as_series(values)
    _require(s, period, "rsi")
    deltas = np.diff(s.to_numpy())
    windows = sliding_window_view(deltas, period - 1)
    gains = np.where(windows > 0, windows, 0.0).sum(axis=1) / period
    losses = np.where(windows < 0, -windows, 0.0).sum(axis=1) / period
    with np.errstate(divide="ignore", invalid="ignore"):
        values_out = np.where(losses == 0, 100.0, 100.0 - 100.0 / (1.0 + gains / losses))
    out = np.full(len(s), np.nan)
    out[period - 1:] = values_out
    return pd.Series(out, index=s.index)


def bollinger(values: Values, period: int, std_mult: float = 2.0) -> pd.DataFrame:
    """
    Bollinger bands: middle = SMA(period), bands = middle +/- std_mult * population std.
    Columns: middle, upper, lower.
    """
    if std_mult < 0:
        raise ValueError(f"bollinger: std_mult must be >= 0, got {std_mult}")
    s = _as_series(values)
    _require(s, period, "bollinger")
    middle = s.rolling(period).mean()
    std = s.rolling(period).std(ddof=0).clip(lower=0.0)
    return pd.DataFrame({
        "middle": middle,
        "upper": middle + std_mult * std,
        "lower": middle - std_mult * std,
    })


@dataclass(frozen=True)
class Extremes:
    """Highest high / lowest low of a trailing window."""
    high: float
    low: float

    def contains(self, price: float) -> bool:
        return self.low <= price <= self.high


def high_low_extremes(bars: pd.DataFrame, window: int) -> Extremes:
    """max(high) / min(low) over the last `window` bars."""
    if window < 1:
        raise ValueError(f"high_low_extremes: window must be >= 1, got {window}")
    if len(bars) < window:
        raise InsufficientData(
            f"high_low_extremes({window}) needs {window} bars, got {len(bars)}",
            required=window,
            available=len(bars),
        )
    tail = bars.iloc[-window:]
    return Extremes(high=float(tail["high"].max()), low=float(tail["low"].min()))


def break_of_structure(price: float, extremes: Extremes) -> bool:
    """True when price trades outside the recent [low, high] range."""
    return not extremes.contains(price)


def last_value(series: pd.Series, name: str = "indicator") -> float:
    """Latest value of an indicator series; InsufficientData if undefined."""
    if len(series) == 0 or pd.isna(series.iloc[-1]):
        raise InsufficientData(f"{name} has no value at the latest bar")
    return float(series.iloc[-1])
