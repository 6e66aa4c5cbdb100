"""
One evaluation cycle for one instrument.

Order inside a cycle: refresh bars, quote, indicators + classification,
reconcile positions the broker closed on its own, monitor pass (closes),
entry pass. Closes are fed into the sizing policy before the entry pass,
so freed capacity and the new volume apply to the same cycle.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Set

import pandas as pd

from autotrader.core.errors import InsufficientData, InvalidOrderResponse
from autotrader.core.types import Position, Quote, SignalSide, TrendSignal
from autotrader.data.frames import bars_to_frame
from autotrader.data.store import BarStore
from autotrader.execution.base import ExecutionClient
from autotrader.risk.gate import EntryGate
from autotrader.risk.manager import RiskManager
from autotrader.risk.monitor import PositionMonitor
from autotrader.strategies.base import BaseStrategy, MarketSnapshot

logger = logging.getLogger("autotrader.engine")

Notifier = Callable[[str], object]


@dataclass
class ClosedPosition:
    position_id: str
    reason: str
    realized_pnl: Optional[float]


@dataclass
class CycleReport:
    """What one cycle saw and did."""
    time: datetime
    signal: Optional[TrendSignal] = None
    closed: List[ClosedPosition] = field(default_factory=list)
    opened: Optional[str] = None
    skip_reason: str = ""


class TradingEngine:
    """Wires strategy, gate, risk manager and monitor to an execution client and bar store."""

    def __init__(
        self,
        symbol: str,
        timeframe: str,
        strategy: BaseStrategy,
        client: ExecutionClient,
        store: BarStore,
        gate: EntryGate,
        risk: RiskManager,
        monitor: PositionMonitor,
        attach_mode: str = "order",
        history_limit: int = 300,
        notify: Optional[Notifier] = None,
    ):
        if attach_mode not in ("order", "modify"):
            raise ValueError(f"unknown attach_mode {attach_mode!r}")
        self.symbol = symbol
        self.timeframe = timeframe
        self.strategy = strategy
        self.client = client
        self.store = store
        self.gate = gate
        self.risk = risk
        self.monitor = monitor
        self.attach_mode = attach_mode
        self.history_limit = history_limit
        self._notify = notify
        # positions this engine has seen open; used to spot broker-side exits
        self._known: Set[str] = set()

    def _send(self, text: str) -> None:
        if self._notify is not None:
            self._notify(text)

    # --- data ------------------------------------------------------------

    def refresh_bars(self) -> pd.DataFrame:
        """Fetch recent closed bars, append new ones to the store, return the stored window."""
        fetched = self.client.get_historical_bars(self.symbol, self.timeframe, limit=self.history_limit)
        added = self.store.save_bars(fetched)
        if added:
            logger.debug("%s: stored %d new %s bars", self.symbol, added, self.timeframe)
        return bars_to_frame(self.store.query_bars(limit=self.history_limit))

    def _snapshot(self, df: pd.DataFrame, quote: Quote) -> MarketSnapshot:
        frames = {self.timeframe: df}
        for tf in self.strategy.timeframes:
            if tf not in frames:
                bars = self.client.get_historical_bars(self.symbol, tf, limit=self.history_limit)
                frames[tf] = bars_to_frame(bars)
        return MarketSnapshot(
            bars=self.strategy.compute_indicators(df),
            price=quote.mid,
            timeframes=frames,
            last_action=self.risk.state.last_action,
        )

    def classify(self, df: pd.DataFrame, quote: Quote) -> Optional[TrendSignal]:
        """Trend signal for this cycle, or None when there is not enough history."""
        try:
            signal = self.strategy.classify(self._snapshot(df, quote))
        except InsufficientData as e:
            logger.warning("%s: skipping entry, insufficient data: %s", self.symbol, e)
            return None
        logger.info(
            "%s: trend=%s side=%s bos=%s",
            self.symbol, signal.trend.value, signal.side.value if signal.side else "-", signal.bos,
        )
        return signal

    # --- exits -----------------------------------------------------------

    def reconcile(self, positions: Sequence[Position], report: CycleReport) -> None:
        """Positions that vanished since last cycle were closed by the broker (TP/SL); book their outcome."""
        live = {p.id for p in positions}
        for pid in sorted(self._known - live):
            pnl = self.client.get_closed_pnl(pid)
            logger.info("%s: position %s closed by broker, pnl=%s", self.symbol, pid, pnl)
            self.risk.record_close(pnl)
            self.monitor.forget(pid)
            self._known.discard(pid)
            report.closed.append(ClosedPosition(pid, "broker", pnl))
            self._send(f"{self.symbol} position {pid} closed by broker, pnl={pnl}")
        self._known |= live

    def monitor_pass(self, positions: Sequence[Position], quote: Quote, report: CycleReport) -> List[Position]:
        """Close what the monitor asks for; return the positions still open."""
        still_open = {p.id: p for p in positions}
        for decision in self.monitor.evaluate(positions, quote):
            result = self.client.close_position(decision.position_id)
            if not result.success:
                logger.warning("%s: close %s failed: %s", self.symbol, decision.position_id, result.message)
                continue
            pnl = result.realized_pnl
            if pnl is None:
                pnl = self.client.get_closed_pnl(decision.position_id)
            self.risk.record_close(pnl)
            self.monitor.forget(decision.position_id)
            self._known.discard(decision.position_id)
            still_open.pop(decision.position_id, None)
            report.closed.append(ClosedPosition(decision.position_id, decision.reason, pnl))
            self._send(f"{self.symbol} closed {decision.position_id} ({decision.reason}) pnl={pnl}")
        return list(still_open.values())

    # --- entries ---------------------------------------------------------

    def _open(self, side: SignalSide, volume: float, sl, tp, quote: Quote, signal: TrendSignal) -> str:
        metadata = {"strategy": self.strategy.name, "trend": signal.trend.value}
        if self.attach_mode == "order":
            result = self.client.open_position(self.symbol, side, volume, sl, tp, metadata)
        else:
            result = self.client.open_position(self.symbol, side, volume, metadata=metadata)
        if not result.success:
            raise InvalidOrderResponse(f"open rejected: {result.message}")
        if not result.position_id:
            raise InvalidOrderResponse("open returned no position id")
        if self.attach_mode == "modify":
            if result.avg_price is None:
                raise InvalidOrderResponse(f"no fill price reported for {result.position_id}")
            tp, sl = self.risk.targets(side, result.avg_price, quote.spread)
            mod = self.client.modify_position(result.position_id, sl, tp)
            if not mod.success:
                logger.error("%s: attaching SL/TP to %s failed: %s", self.symbol, result.position_id, mod.message)
        logger.info(
            "%s: opened %s %s vol=%.4f sl=%s tp=%s",
            self.symbol, result.position_id, side.value, volume, sl, tp,
        )
        return result.position_id

    def entry_pass(
        self,
        now: datetime,
        signal: Optional[TrendSignal],
        quote: Quote,
        open_count: int,
        report: CycleReport,
    ) -> None:
        if signal is None or not signal.actionable:
            report.skip_reason = "no actionable signal"
            return
        decision = self.gate.try_enter(now, open_count)
        if not decision.allowed:
            report.skip_reason = decision.reason
            return
        side = signal.side
        plan = self.risk.plan_entry(side, quote.entry_price(side), quote.spread)
        if not plan.allowed:
            logger.info("%s: entry rejected by risk: %s", self.symbol, plan.reason)
            self.gate.rollback(decision)
            report.skip_reason = plan.reason
            return
        try:
            pid = self._open(side, plan.quantity, plan.stop_price, plan.take_profit_price, quote, signal)
        except InvalidOrderResponse as e:
            logger.warning("%s: entry aborted: %s", self.symbol, e)
            self.gate.rollback(decision)
            report.skip_reason = str(e)
            return
        except Exception:
            # no entry happened from the gate's point of view; the scheduler logs the error
            self.gate.rollback(decision)
            raise
        self.risk.record_open(side, now)
        self._known.add(pid)
        report.opened = pid
        self._send(f"{self.symbol} opened {side.value} {plan.quantity} (id {pid})")

    # --- cycle -----------------------------------------------------------

    def run_cycle(self, now: datetime) -> CycleReport:
        """
        One full evaluation. ConnectivityError and other boundary failures
        propagate to the scheduler; InsufficientData only skips the entry.
        """
        report = CycleReport(time=now)
        df = self.refresh_bars()
        quote = self.client.get_quote(self.symbol)
        report.signal = self.classify(df, quote)

        positions = self.client.list_open_positions(self.symbol)
        self.reconcile(positions, report)
        remaining = self.monitor_pass(positions, quote, report)

        self.entry_pass(now, report.signal, quote, len(remaining), report)
        return report
