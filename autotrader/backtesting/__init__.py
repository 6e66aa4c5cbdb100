"""Backtesting: replay of the live cycle over historical bars."""

from autotrader.backtesting.engine import BacktestEngine, BacktestResult

__all__ = ["BacktestEngine", "BacktestResult"]
