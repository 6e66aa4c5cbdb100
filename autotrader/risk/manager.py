"""
Risk manager: owns the sizing state, turns a signal into volume + TP/SL,
and feeds realized outcomes back into the sizing policy.

Sizing state changes at two points only: record_open (after a confirmed
entry) and record_close (after a confirmed close with a reported profit).
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from autotrader.core.types import SignalSide
from autotrader.risk.sizing import SizingPolicy
from autotrader.utils.exchange_filters import parse_symbol_filters, round_price, round_quantity

logger = logging.getLogger("autotrader.risk")


@dataclass
class RiskResult:
    """Entry plan: allowed or rejected + reason."""
    allowed: bool
    quantity: float = 0.0
    stop_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    reason: str = ""


@dataclass(frozen=True)
class SizingState:
    base_volume: float
    current_volume: float
    last_action: Optional[SignalSide] = None
    last_entry_time: Optional[datetime] = None


def compute_targets(
    side: SignalSide,
    entry_price: float,
    take_profit: float,
    stop_loss: float,
    spread: float = 0.0,
) -> Tuple[Optional[float], Optional[float]]:
    """
    TP/SL prices from distances, each pushed out by the spread.
    BUY: tp = entry + tp + spread, sl = entry - sl - spread (mirrored for SELL).
    A zero distance means no level.
    """
    sign = 1.0 if side == SignalSide.LONG else -1.0
    tp = entry_price + sign * (take_profit + spread) if take_profit > 0 else None
    sl = entry_price - sign * (stop_loss + spread) if stop_loss > 0 else None
    return tp, sl


class RiskManager:
    """
    Volume from the sizing policy, TP/SL from fixed distances (optionally
    scaled by current_volume / base_volume so currency risk tracks size).
    """

    def __init__(
        self,
        policy: SizingPolicy,
        take_profit: float,
        stop_loss: float,
        use_spread: bool = True,
        scale_targets: bool = False,
        price_tick: float = 0.0,
        symbol_info: Optional[dict] = None,
        volume_step: Optional[float] = None,
    ):
        self.policy = policy
        self.take_profit = take_profit
        self.stop_loss = stop_loss
        self.use_spread = use_spread
        self.scale_targets = scale_targets
        self._min_qty, self._lot_step, tick = parse_symbol_filters(symbol_info)
        if symbol_info is None and volume_step:
            self._min_qty, self._lot_step = volume_step, volume_step
        self._price_tick = price_tick or tick
        self._last_action: Optional[SignalSide] = None
        self._last_entry_time: Optional[datetime] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> SizingState:
        return SizingState(
            base_volume=self.policy.base_volume,
            current_volume=self.policy.current_volume(),
            last_action=self._last_action,
            last_entry_time=self._last_entry_time,
        )

    def targets(self, side: SignalSide, entry_price: float, spread: float = 0.0) -> Tuple[Optional[float], Optional[float]]:
        """Rounded TP/SL for an entry at entry_price."""
        scale = self.policy.multiple if self.scale_targets else 1.0
        tp, sl = compute_targets(
            side,
            entry_price,
            self.take_profit * scale,
            self.stop_loss * scale,
            spread if self.use_spread else 0.0,
        )
        if self._price_tick > 0:
            tp = round_price(tp, self._price_tick) if tp is not None else None
            sl = round_price(sl, self._price_tick) if sl is not None else None
        return tp, sl

    def plan_entry(self, side: SignalSide, entry_price: float, spread: float = 0.0) -> RiskResult:
        """Volume and TP/SL for a new position. Does not touch sizing state."""
        if entry_price <= 0:
            return RiskResult(allowed=False, reason="no price")
        qty = round_quantity(self.policy.current_volume(), self._min_qty, self._lot_step)
        if qty <= 0:
            return RiskResult(allowed=False, reason="volume rounded to 0")
        tp, sl = self.targets(side, entry_price, spread)
        return RiskResult(allowed=True, quantity=qty, stop_price=sl, take_profit_price=tp)

    def record_open(self, side: SignalSide, when: datetime) -> None:
        """Entry confirmed by the broker."""
        with self._lock:
            self._last_action = side
            self._last_entry_time = when

    def record_close(self, pnl: Optional[float]) -> Optional[bool]:
        """
        Feed a realized profit into the sizing policy.
        Returns True on win, False on loss, None for break-even or unknown profit.
        """
        if pnl is None:
            logger.warning("Close without reported profit; sizing unchanged at %.4f", self.policy.current_volume())
            return None
        with self._lock:
            before = self.policy.current_volume()
            if pnl > 0:
                self.policy.on_win()
                won: Optional[bool] = True
            elif pnl < 0:
                self.policy.on_lose()
                won = False
            else:
                won = None
            after = self.policy.current_volume()
        logger.info(
            "Closed trade pnl=%.4f (%s); volume %.4f -> %.4f",
            pnl, "win" if won else "loss" if won is False else "flat", before, after,
        )
        return won
