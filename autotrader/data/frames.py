"""Conversion between Bar sequences and the OHLCV DataFrames strategies consume."""

from __future__ import annotations
from typing import Iterable, List

import pandas as pd

from autotrader.core.types import Bar

COLUMNS = ["time", "open", "high", "low", "close", "volume"]


def bars_to_frame(bars: Iterable[Bar]) -> pd.DataFrame:
    rows = [(b.time, b.open, b.high, b.low, b.close, b.volume) for b in bars]
    df = pd.DataFrame(rows, columns=COLUMNS)
    if not df.empty:
        df["time"] = pd.to_datetime(df["time"])
    return df


def frame_to_bars(df: pd.DataFrame) -> List[Bar]:
    out = []
    for row in df[COLUMNS].itertuples(index=False):
        t = row.time.to_pydatetime() if isinstance(row.time, pd.Timestamp) else row.time
        out.append(Bar(
            time=t,
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        ))
    return out
