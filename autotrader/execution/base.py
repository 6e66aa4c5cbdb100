"""Abstract execution interface: market data, order placement, position queries."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from autotrader.core.types import Bar, Position, Quote, SignalSide


@dataclass
class OrderResult:
    """Result of an open / modify / close call."""
    success: bool
    position_id: Optional[str] = None
    avg_price: Optional[float] = None
    quantity: Optional[float] = None
    realized_pnl: Optional[float] = None
    message: str = ""


class ExecutionClient(ABC):
    """
    Broker boundary. Network failures surface as ConnectivityError;
    rejected orders come back as OrderResult(success=False).
    """

    @abstractmethod
    def get_historical_bars(
        self,
        symbol: str,
        timeframe: str,
        since: Optional[datetime] = None,
        limit: int = 300,
    ) -> List[Bar]:
        """Closed bars, oldest first."""
        pass

    @abstractmethod
    def get_quote(self, symbol: str) -> Quote:
        """Current bid/ask."""
        pass

    @abstractmethod
    def open_position(
        self,
        symbol: str,
        side: SignalSide,
        volume: float,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        metadata: Optional[dict] = None,
    ) -> OrderResult:
        """Market entry with optional SL/TP attached."""
        pass

    @abstractmethod
    def modify_position(
        self,
        position_id: str,
        stop_loss: Optional[float],
        take_profit: Optional[float],
    ) -> OrderResult:
        """Replace SL/TP of an open position."""
        pass

    @abstractmethod
    def close_position(self, position_id: str) -> OrderResult:
        """Market close. realized_pnl is set when the broker reports it."""
        pass

    @abstractmethod
    def list_open_positions(self, symbol: str) -> List[Position]:
        """Open positions for symbol with current unrealized profit."""
        pass

    def get_closed_pnl(self, position_id: str) -> Optional[float]:
        """Realized profit of a position closed outside our control (broker TP/SL). Default unknown."""
        return None

    def get_symbol_info(self, symbol: str) -> Optional[dict]:
        """Exchange symbol info (filters, etc.). Default none."""
        return None

    def set_leverage(self, symbol: str, leverage: int) -> None:
        """Set leverage for symbol. Default no-op."""
        return None
