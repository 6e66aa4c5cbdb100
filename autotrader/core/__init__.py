"""Core: config, types, errors, logging."""

from autotrader.core.config import load_config, Config
from autotrader.core.errors import (
    TradingError,
    InsufficientData,
    ConnectivityError,
    InvalidOrderResponse,
    ConfigurationError,
)
from autotrader.core.types import (
    Bar,
    Position,
    Quote,
    SignalSide,
    Trade,
    TrendSignal,
    TrendState,
)
from autotrader.core.logger import setup_logging

__all__ = [
    "load_config",
    "Config",
    "TradingError",
    "InsufficientData",
    "ConnectivityError",
    "InvalidOrderResponse",
    "ConfigurationError",
    "Bar",
    "Position",
    "Quote",
    "SignalSide",
    "Trade",
    "TrendSignal",
    "TrendState",
    "setup_logging",
]
