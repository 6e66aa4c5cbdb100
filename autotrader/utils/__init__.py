"""Utils: Telegram, timeframes, exchange filters."""

from autotrader.utils.exchange_filters import parse_symbol_filters, round_price, round_quantity
from autotrader.utils.telegram import make_notifier, send_telegram
from autotrader.utils.timeframes import next_boundary, resample_bars, timeframe_minutes

__all__ = [
    "make_notifier",
    "next_boundary",
    "parse_symbol_filters",
    "resample_bars",
    "round_price",
    "round_quantity",
    "send_telegram",
    "timeframe_minutes",
]
