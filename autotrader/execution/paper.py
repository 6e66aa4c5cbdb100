"""
In-memory paper broker. Bars are pushed one at a time; the quote follows the
last close +/- half the spread, and attached SL/TP are enforced against each
new bar's range (stop checked first).
"""

from __future__ import annotations
import itertools
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from autotrader.core.errors import ConnectivityError
from autotrader.core.types import Bar, Position, Quote, SignalSide, Trade
from autotrader.data.frames import bars_to_frame, frame_to_bars
from autotrader.execution.base import ExecutionClient, OrderResult
from autotrader.utils.timeframes import resample_bars, timeframe_minutes

logger = logging.getLogger("autotrader.execution.paper")


class PaperExecutionClient(ExecutionClient):
    """Simulated fills for tests and replays. `offline` makes every call raise ConnectivityError."""

    def __init__(self, timeframe: str = "5m", spread: float = 0.0, contract_size: float = 1.0):
        self.timeframe = timeframe
        self.spread = spread
        self.contract_size = contract_size
        self.offline = False
        self.reject_next_open = False
        self.trades: List[Trade] = []
        self._bars: Dict[str, List[Bar]] = {}
        self._quotes: Dict[str, Quote] = {}
        self._positions: Dict[str, Position] = {}
        self._closed_pnl: Dict[str, float] = {}
        self._ids = itertools.count(1)

    # --- simulation controls -------------------------------------------------

    @property
    def now(self) -> Optional[datetime]:
        times = [bars[-1].time for bars in self._bars.values() if bars]
        return max(times) if times else None

    def set_quote(self, symbol: str, bid: float, ask: float) -> None:
        self._quotes[symbol] = Quote(bid=bid, ask=ask)
        self._mark(symbol)

    def push_bar(self, symbol: str, bar: Bar) -> None:
        """Append a closed bar, fire broker-side SL/TP it touched, then re-quote at its close."""
        self._bars.setdefault(symbol, []).append(bar)
        half = self.spread / 2.0
        for pos in [p for p in self._positions.values() if p.symbol == symbol]:
            hit = self._touched(pos, bar, half)
            if hit is not None:
                price, reason = hit
                self._settle(pos, price, bar.time, reason)
        self.set_quote(symbol, bar.close - half, bar.close + half)

    def _touched(self, pos: Position, bar: Bar, half: float):
        if pos.side == SignalSide.LONG:
            low, high = bar.low - half, bar.high - half
            if pos.stop_loss is not None and low <= pos.stop_loss:
                return pos.stop_loss, "stop_loss"
            if pos.take_profit is not None and high >= pos.take_profit:
                return pos.take_profit, "take_profit"
        else:
            low, high = bar.low + half, bar.high + half
            if pos.stop_loss is not None and high >= pos.stop_loss:
                return pos.stop_loss, "stop_loss"
            if pos.take_profit is not None and low <= pos.take_profit:
                return pos.take_profit, "take_profit"
        return None

    def _pnl(self, pos: Position, exit_price: float) -> float:
        sign = 1.0 if pos.side == SignalSide.LONG else -1.0
        return (exit_price - pos.entry_price) * pos.volume * self.contract_size * sign

    def _mark(self, symbol: str) -> None:
        quote = self._quotes.get(symbol)
        if quote is None:
            return
        for pos in self._positions.values():
            if pos.symbol == symbol:
                pos.unrealized_pnl = self._pnl(pos, quote.exit_price(pos.side))

    def _settle(self, pos: Position, price: float, when: Optional[datetime], reason: str) -> float:
        pnl = self._pnl(pos, price)
        del self._positions[pos.id]
        self._closed_pnl[pos.id] = pnl
        self.trades.append(Trade(
            symbol=pos.symbol,
            side=pos.side,
            quantity=pos.volume,
            entry_price=pos.entry_price,
            exit_price=price,
            pnl=pnl,
            entry_time=pos.opened_at,
            exit_time=when,
            exit_reason=reason,
            position_id=pos.id,
        ))
        logger.debug("Paper close %s %s @ %.5f pnl=%.4f (%s)", pos.id, pos.side.value, price, pnl, reason)
        return pnl

    def _check_online(self) -> None:
        if self.offline:
            raise ConnectivityError("paper broker offline")

    # --- ExecutionClient -----------------------------------------------------

    def get_historical_bars(self, symbol, timeframe, since=None, limit=300):
        self._check_online()
        bars = self._bars.get(symbol, [])
        if timeframe != self.timeframe and bars:
            ratio = max(1, timeframe_minutes(timeframe) // timeframe_minutes(self.timeframe))
            tail = bars[-(limit + 1) * ratio:] if limit and since is None else bars
            bars = frame_to_bars(resample_bars(bars_to_frame(tail), timeframe))
        if since is not None:
            bars = [b for b in bars if b.time >= since]
        return list(bars[-limit:]) if limit else list(bars)

    def get_quote(self, symbol):
        self._check_online()
        if symbol not in self._quotes:
            raise ConnectivityError(f"no quote for {symbol}")
        return self._quotes[symbol]

    def open_position(self, symbol, side, volume, stop_loss=None, take_profit=None, metadata=None):
        self._check_online()
        quote = self.get_quote(symbol)
        if self.reject_next_open:
            self.reject_next_open = False
            return OrderResult(success=True, message="accepted without position id")
        pid = f"P{next(self._ids)}"
        price = quote.entry_price(side)
        self._positions[pid] = Position(
            id=pid,
            symbol=symbol,
            side=side,
            volume=volume,
            entry_price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            opened_at=self.now,
        )
        self._mark(symbol)
        return OrderResult(success=True, position_id=pid, avg_price=price, quantity=volume)

    def modify_position(self, position_id, stop_loss, take_profit):
        self._check_online()
        pos = self._positions.get(position_id)
        if pos is None:
            return OrderResult(success=False, position_id=position_id, message="unknown position")
        pos.stop_loss = stop_loss
        pos.take_profit = take_profit
        return OrderResult(success=True, position_id=position_id)

    def close_position(self, position_id):
        self._check_online()
        pos = self._positions.get(position_id)
        if pos is None:
            return OrderResult(success=False, position_id=position_id, message="unknown position")
        price = self.get_quote(pos.symbol).exit_price(pos.side)
        pnl = self._settle(pos, price, self.now, "closed")
        return OrderResult(
            success=True, position_id=position_id, avg_price=price, quantity=pos.volume, realized_pnl=pnl,
        )

    def list_open_positions(self, symbol):
        self._check_online()
        self._mark(symbol)
        return [replace(p) for p in self._positions.values() if p.symbol == symbol]

    def get_closed_pnl(self, position_id):
        return self._closed_pnl.get(position_id)

