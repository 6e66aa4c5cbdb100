"""Strategies: trend classifiers and the factory that picks one from config."""

from autotrader.core.config import Config
from autotrader.core.errors import ConfigurationError
from autotrader.strategies.base import BaseStrategy, MarketSnapshot
from autotrader.strategies.bollinger_rsi import BollingerRsiStrategy, RsiReversalStrategy
from autotrader.strategies.ema_trend import EmaStackStrategy, EmaTrendStrategy
from autotrader.strategies.multi_timeframe import MultiTimeframeStrategy
from autotrader.strategies.price_action import AlternatingStrategy, MomentumStrategy


def build_strategy(config: Config) -> BaseStrategy:
    """Instantiate the classifier named by config.strategy_name."""
    name = config.strategy_name
    if name == "ema_trend":
        return EmaTrendStrategy(
            periods=config.ema_periods,
            pullback_ema=config.pullback_ema or None,
            pullback_threshold=config.pullback_threshold,
        )
    if name == "ema_stack":
        return EmaStackStrategy(
            periods=(config.ema_fast, config.ema_medium, config.ema_slow),
            require_cross=config.require_cross,
        )
    if name == "multi_timeframe":
        return MultiTimeframeStrategy(
            timeframes=config.confirm_timeframes,
            lookback=config.mtf_lookback,
            require_bos=config.require_bos,
            bos_window=config.bos_window,
        )
    if name == "bollinger_rsi":
        return BollingerRsiStrategy(
            bb_period=config.bb_period,
            bb_std=config.bb_std,
            rsi_period=config.rsi_period,
            rsi_oversold=config.rsi_oversold,
            rsi_overbought=config.rsi_overbought,
            trend_lookback=config.trend_lookback,
            require_trend=config.require_trend,
        )
    if name == "rsi_reversal":
        return RsiReversalStrategy(
            rsi_period=config.rsi_period,
            rsi_oversold=config.rsi_oversold,
            rsi_overbought=config.rsi_overbought,
        )
    if name == "momentum":
        return MomentumStrategy()
    if name == "alternating":
        return AlternatingStrategy()
    raise ConfigurationError(f"unknown strategy {name!r}")


__all__ = [
    "AlternatingStrategy",
    "BaseStrategy",
    "BollingerRsiStrategy",
    "EmaStackStrategy",
    "EmaTrendStrategy",
    "MarketSnapshot",
    "MomentumStrategy",
    "MultiTimeframeStrategy",
    "RsiReversalStrategy",
    "build_strategy",
]
