"""Timeframe strings, wall-clock boundaries and bar resampling."""

from __future__ import annotations
import math
from datetime import datetime, timezone

import pandas as pd


def timeframe_minutes(tf: str) -> int:
    """Convert Binance-style timeframe (e.g. '5m', '1h', '1d') to minutes."""
    tf = tf.strip().lower()
    if tf.endswith("m"):
        return int(tf[:-1])
    if tf.endswith("h"):
        return int(tf[:-1]) * 60
    if tf.endswith("d"):
        return int(tf[:-1]) * 60 * 24
    raise ValueError(f"Unsupported timeframe: {tf}")


def next_boundary(now: datetime, minutes: int) -> datetime:
    """
    First N-minute mark strictly after `now` (e.g. 10:07:30 -> 10:10:00 for N=5).
    Computed on the UTC epoch; naive datetimes are taken as UTC.
    """
    if minutes < 1:
        raise ValueError("minutes must be >= 1")
    aware = now if now.tzinfo else now.replace(tzinfo=timezone.utc)
    step = minutes * 60
    ts = aware.timestamp()
    nxt = (math.floor(ts / step) + 1) * step
    out = datetime.fromtimestamp(nxt, tz=timezone.utc).astimezone(aware.tzinfo)
    return out if now.tzinfo else out.replace(tzinfo=None)


def resample_bars(df: pd.DataFrame, tf: str) -> pd.DataFrame:
    """Aggregate OHLCV bars (column `time`) into a coarser timeframe."""
    if df.empty:
        return df.copy()
    rule = f"{timeframe_minutes(tf)}min"
    grouped = df.set_index("time").resample(rule, label="left", closed="left")
    out = grouped.agg({"open": "first", "high": "max", "low": "min", "close": "last", "volume": "sum"})
    return out.dropna(subset=["close"]).reset_index()
