"""Execution: abstract client, Binance Futures client, paper client."""

from autotrader.execution.base import ExecutionClient, OrderResult
from autotrader.execution.binance_futures import BinanceFuturesClient, retry_on_rate_limit
from autotrader.execution.paper import PaperExecutionClient

__all__ = [
    "BinanceFuturesClient",
    "ExecutionClient",
    "OrderResult",
    "PaperExecutionClient",
    "retry_on_rate_limit",
]
