"""
Binance USDT-M Futures execution with retry and rate-limit handling.

Runs in hedge mode: one position per (symbol, positionSide), identified as
"SYMBOL:LONG" / "SYMBOL:SHORT". SL/TP are closePosition STOP_MARKET /
TAKE_PROFIT_MARKET orders on the same positionSide.
"""

from __future__ import annotations
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

import requests
from binance.client import Client
from binance.exceptions import BinanceAPIException, BinanceRequestException

from autotrader.core.errors import ConnectivityError
from autotrader.core.types import Bar, Position, Quote, SignalSide
from autotrader.execution.base import ExecutionClient, OrderResult
from autotrader.utils.exchange_filters import parse_symbol_filters, round_price

logger = logging.getLogger("autotrader.execution.binance")

TARGET_ORDER_TYPES = ("STOP_MARKET", "TAKE_PROFIT_MARKET")


def retry_on_rate_limit(max_retries: int = 3, base_delay: float = 1.0):
    """
    Decorator: retry on 429 or 418 (rate limit) with exponential delay.
    Rate limits left after the last retry, 5xx responses and transport
    failures are raised as ConnectivityError.
    """
    def decorator(f):
        def wrapped(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return f(*args, **kwargs)
                except BinanceAPIException as e:
                    if e.status_code in (429, 418):
                        if attempt < max_retries - 1:
                            delay = base_delay * (2 ** attempt)
                            logger.warning("Rate limited, retry in %.1fs (attempt %d)", delay, attempt + 1)
                            time.sleep(delay)
                            continue
                        raise ConnectivityError(f"rate limited: {e.message}") from e
                    if e.status_code >= 500:
                        raise ConnectivityError(f"server error {e.status_code}: {e.message}") from e
                    raise
                except (BinanceRequestException, requests.RequestException) as e:
                    raise ConnectivityError(str(e)) from e
        wrapped.__name__ = f.__name__
        wrapped.__doc__ = f.__doc__
        return wrapped
    return decorator


def _position_side(side: SignalSide) -> str:
    return "LONG" if side == SignalSide.LONG else "SHORT"


def _split_id(position_id: str) -> Tuple[str, str]:
    symbol, _, pos_side = position_id.partition(":")
    return symbol, pos_side


class BinanceFuturesClient(ExecutionClient):
    """Binance USDT-M Futures client (testnet and live)."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        testnet: bool = True,
    ):
        self._client = Client(api_key, api_secret)
        if testnet:
            self._client.API_URL = "https://testnet.binancefuture.com/fapi"
            self._client.FUTURES_URL = "https://testnet.binancefuture.com/fapi"
            logger.info("Binance Futures: using TESTNET")
        else:
            logger.info("Binance Futures: using LIVE")
        self._symbol_info_cache: Dict[str, dict] = {}
        # position id -> open time (ms), for realized pnl lookups after broker-side exits
        self._opened_at: Dict[str, int] = {}

    # --- market data -----------------------------------------------------

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_historical_bars(self, symbol, timeframe, since=None, limit=300):
        params = {"symbol": symbol, "interval": timeframe, "limit": limit}
        if since is not None:
            ts = since if since.tzinfo else since.replace(tzinfo=timezone.utc)
            params["startTime"] = int(ts.timestamp() * 1000)
        raw = self._client.futures_klines(**params)
        now_ms = int(time.time() * 1000)
        bars = []
        for k in raw:
            if int(k[6]) > now_ms:
                continue  # still forming
            bars.append(Bar(
                time=datetime.fromtimestamp(int(k[0]) / 1000, tz=timezone.utc),
                open=float(k[1]),
                high=float(k[2]),
                low=float(k[3]),
                close=float(k[4]),
                volume=float(k[5]),
            ))
        return bars

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_quote(self, symbol):
        book = self._client.futures_orderbook_ticker(symbol=symbol)
        return Quote(bid=float(book["bidPrice"]), ask=float(book["askPrice"]))

    @retry_on_rate_limit(max_retries=2)
    def get_symbol_info(self, symbol: str) -> Optional[dict]:
        if symbol in self._symbol_info_cache:
            return self._symbol_info_cache[symbol]
        info = self._client.futures_exchange_info()
        for s in info.get("symbols", []):
            if s.get("symbol") == symbol:
                self._symbol_info_cache[symbol] = s
                return s
        return None

    def set_leverage(self, symbol: str, leverage: int) -> None:
        try:
            self._client.futures_change_leverage(symbol=symbol, leverage=leverage)
            logger.info("Leverage set to %sx for %s", leverage, symbol)
        except BinanceAPIException as e:
            logger.warning("Could not set leverage: %s", e)

    # --- positions -------------------------------------------------------

    @retry_on_rate_limit(max_retries=2)
    def list_open_positions(self, symbol):
        info = self._client.futures_position_information(symbol=symbol)
        targets = self._open_targets(symbol)
        out = []
        for p in info:
            amt = float(p.get("positionAmt", 0.0))
            if amt == 0:
                continue
            side = SignalSide.LONG if amt > 0 else SignalSide.SHORT
            pos_side = p.get("positionSide") or "BOTH"
            if pos_side == "BOTH":
                pos_side = _position_side(side)
            pid = f"{symbol}:{pos_side}"
            sl, tp = targets.get(pos_side, (None, None))
            opened = self._opened_at.get(pid)
            out.append(Position(
                id=pid,
                symbol=symbol,
                side=side,
                volume=abs(amt),
                entry_price=float(p.get("entryPrice", 0)),
                unrealized_pnl=float(p.get("unRealizedProfit", 0)),
                stop_loss=sl,
                take_profit=tp,
                opened_at=datetime.fromtimestamp(opened / 1000, tz=timezone.utc) if opened else None,
            ))
        return out

    def _open_targets(self, symbol: str) -> Dict[str, Tuple[Optional[float], Optional[float]]]:
        """positionSide -> (stop_loss, take_profit) from open conditional orders."""
        out: Dict[str, list] = {}
        for o in self._client.futures_get_open_orders(symbol=symbol):
            if o.get("type") not in TARGET_ORDER_TYPES:
                continue
            entry = out.setdefault(o.get("positionSide", "BOTH"), [None, None])
            idx = 0 if o["type"] == "STOP_MARKET" else 1
            entry[idx] = float(o.get("stopPrice", 0))
        return {k: (v[0], v[1]) for k, v in out.items()}

    def _place_targets(self, symbol: str, side: SignalSide, stop_loss, take_profit) -> None:
        _, _, price_tick = parse_symbol_filters(self.get_symbol_info(symbol))
        close_side = side.opposite.value
        pos_side = _position_side(side)
        if stop_loss is not None:
            self._client.futures_create_order(
                symbol=symbol, side=close_side, positionSide=pos_side, type="STOP_MARKET",
                stopPrice=str(round_price(stop_loss, price_tick)), closePosition=True,
            )
        if take_profit is not None:
            self._client.futures_create_order(
                symbol=symbol, side=close_side, positionSide=pos_side, type="TAKE_PROFIT_MARKET",
                stopPrice=str(round_price(take_profit, price_tick)), closePosition=True,
            )

    def _side_amount(self, symbol: str, pos_side: str) -> float:
        """Absolute positionAmt held on one hedge-mode side."""
        for p in self._client.futures_position_information(symbol=symbol):
            if p.get("positionSide") == pos_side:
                return abs(float(p.get("positionAmt", 0.0)))
        return 0.0

    def _cancel_targets(self, symbol: str, pos_side: str) -> None:
        for o in self._client.futures_get_open_orders(symbol=symbol):
            if o.get("type") in TARGET_ORDER_TYPES and o.get("positionSide") == pos_side:
                self._client.futures_cancel_order(symbol=symbol, orderId=o["orderId"])

    @retry_on_rate_limit(max_retries=2)
    def open_position(self, symbol, side, volume, stop_loss=None, take_profit=None, metadata=None):
        """
        Market order, then SL and TP as closePosition conditional orders.
        Refused while the same positionSide is open: Binance would merge the
        fills into one position and stack a second set of targets on it.
        """
        pos_side = _position_side(side)
        if self._side_amount(symbol, pos_side):
            logger.warning("%s: position already open on %s, not adding to it", symbol, pos_side)
            return OrderResult(success=False, message=f"position already open on {pos_side}")
        try:
            res = self._client.futures_create_order(
                symbol=symbol, side=side.value, positionSide=pos_side,
                type="MARKET", quantity=str(volume), newOrderRespType="RESULT",
            )
        except BinanceAPIException as e:
            if e.status_code in (429, 418) or e.status_code >= 500:
                raise
            logger.error("Binance order error: %s", e)
            return OrderResult(success=False, message=str(e))
        pid = f"{symbol}:{pos_side}"
        self._opened_at[pid] = int(res.get("updateTime") or time.time() * 1000)
        avg = float(res.get("avgPrice") or 0) or None
        try:
            self._place_targets(symbol, side, stop_loss, take_profit)
        except BinanceAPIException as e:
            # position is open; the monitor's fixed-target rule still covers it
            logger.error("SL/TP placement failed for %s: %s", pid, e)
            return OrderResult(success=True, position_id=pid, avg_price=avg, quantity=volume, message=str(e))
        return OrderResult(success=True, position_id=pid, avg_price=avg, quantity=volume)

    @retry_on_rate_limit(max_retries=2)
    def modify_position(self, position_id, stop_loss, take_profit):
        symbol, pos_side = _split_id(position_id)
        side = SignalSide.LONG if pos_side == "LONG" else SignalSide.SHORT
        try:
            self._cancel_targets(symbol, pos_side)
            self._place_targets(symbol, side, stop_loss, take_profit)
        except BinanceAPIException as e:
            if e.status_code in (429, 418) or e.status_code >= 500:
                raise
            logger.error("Modify %s failed: %s", position_id, e)
            return OrderResult(success=False, position_id=position_id, message=str(e))
        return OrderResult(success=True, position_id=position_id)

    @retry_on_rate_limit(max_retries=2)
    def close_position(self, position_id):
        symbol, pos_side = _split_id(position_id)
        amt = self._side_amount(symbol, pos_side)
        if amt == 0:
            return OrderResult(success=False, position_id=position_id, message="position not open")
        close_side = "SELL" if pos_side == "LONG" else "BUY"
        try:
            res = self._client.futures_create_order(
                symbol=symbol, side=close_side, positionSide=pos_side,
                type="MARKET", quantity=str(amt), newOrderRespType="RESULT",
            )
            self._cancel_targets(symbol, pos_side)
        except BinanceAPIException as e:
            if e.status_code in (429, 418) or e.status_code >= 500:
                raise
            logger.error("Close %s failed: %s", position_id, e)
            return OrderResult(success=False, position_id=position_id, message=str(e))
        fills = self._client.futures_account_trades(symbol=symbol, orderId=res.get("orderId"))
        pnl = sum(float(t.get("realizedPnl", 0)) for t in fills) if fills else None
        self._opened_at.pop(position_id, None)
        return OrderResult(
            success=True,
            position_id=position_id,
            avg_price=float(res.get("avgPrice") or 0) or None,
            quantity=amt,
            realized_pnl=pnl,
        )

    @retry_on_rate_limit(max_retries=2)
    def get_closed_pnl(self, position_id):
        """Sum of realized pnl on the position's side since we opened it; None when untracked or no fills."""
        opened = self._opened_at.get(position_id)
        if opened is None:
            return None
        symbol, pos_side = _split_id(position_id)
        trades = self._client.futures_account_trades(symbol=symbol, startTime=opened)
        closing = [t for t in trades if t.get("positionSide") == pos_side and float(t.get("realizedPnl", 0)) != 0]
        if not closing:
            return None
        self._opened_at.pop(position_id, None)
        return sum(float(t["realizedPnl"]) for t in closing)
