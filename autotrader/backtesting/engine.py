"""
Replay backtest: the live cycle (TradingEngine) driven bar by bar against
the paper broker. Each cycle runs at the bar's close time and only sees
bars that have closed by then.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from autotrader.analytics.metrics import PerformanceMetrics, metrics_from_trades
from autotrader.core.types import Bar, Trade
from autotrader.data.frames import frame_to_bars
from autotrader.data.store import MemoryBarStore
from autotrader.engine.trader import CycleReport, TradingEngine
from autotrader.execution.paper import PaperExecutionClient
from autotrader.risk.gate import EntryGate
from autotrader.risk.manager import RiskManager
from autotrader.risk.monitor import PositionMonitor
from autotrader.strategies.base import BaseStrategy
from autotrader.utils.timeframes import timeframe_minutes

logger = logging.getLogger("autotrader.backtest")


@dataclass
class BacktestResult:
    """Backtest output: trades, equity per bar, metrics."""
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)
    metrics: Optional[PerformanceMetrics] = None
    reports: List[CycleReport] = field(default_factory=list)


class BacktestEngine:
    """
    Replays closed bars through the same strategy / gate / sizing / monitor
    objects used live. Fills at close +/- half spread; attached SL/TP fire
    against the next bars' high/low. Open positions are closed at the last
    quote when the data ends.
    """

    def __init__(
        self,
        strategy: BaseStrategy,
        risk_manager: RiskManager,
        monitor: PositionMonitor,
        gate: EntryGate,
        timeframe: str = "5m",
        spread: float = 0.0,
        initial_capital: float = 10000.0,
        attach_mode: str = "order",
        history_limit: int = 300,
        contract_size: float = 1.0,
    ):
        self.strategy = strategy
        self.risk_manager = risk_manager
        self.monitor = monitor
        self.gate = gate
        self.timeframe = timeframe
        self.spread = spread
        self.initial_capital = initial_capital
        self.attach_mode = attach_mode
        self.history_limit = history_limit
        self.contract_size = contract_size

    def run(self, data: Union[pd.DataFrame, Sequence[Bar]], symbol: str = "LTCUSDT") -> BacktestResult:
        bars = frame_to_bars(data) if isinstance(data, pd.DataFrame) else list(data)
        bars.sort(key=lambda b: b.time)
        client = PaperExecutionClient(self.timeframe, self.spread, self.contract_size)
        engine = TradingEngine(
            symbol=symbol,
            timeframe=self.timeframe,
            strategy=self.strategy,
            client=client,
            store=MemoryBarStore(),
            gate=self.gate,
            risk=self.risk_manager,
            monitor=self.monitor,
            attach_mode=self.attach_mode,
            history_limit=self.history_limit,
        )
        bar_span = timedelta(minutes=timeframe_minutes(self.timeframe))
        reasons: Dict[str, str] = {}
        reports: List[CycleReport] = []
        equity: List[float] = []

        for bar in bars:
            client.push_bar(symbol, bar)
            report = engine.run_cycle(bar.time + bar_span)
            reports.append(report)
            for c in report.closed:
                if c.reason != "broker":
                    reasons[c.position_id] = c.reason
            realized = sum(t.pnl for t in client.trades)
            unrealized = sum(p.unrealized_pnl for p in client.list_open_positions(symbol))
            equity.append(self.initial_capital + realized + unrealized)

        for pos in client.list_open_positions(symbol):
            result = client.close_position(pos.id)
            self.risk_manager.record_close(result.realized_pnl)
            reasons[pos.id] = "end_of_data"
        if bars:
            equity.append(self.initial_capital + sum(t.pnl for t in client.trades))

        trades = [
            replace(t, exit_reason=reasons[t.position_id]) if t.position_id in reasons else t
            for t in client.trades
        ]
        metrics = metrics_from_trades(trades, self.initial_capital)
        logger.info(
            "Backtest %s: %d bars, %d trades, pnl=%.4f, win rate=%.1f%%",
            symbol, len(bars), metrics.total_trades, metrics.total_pnl, metrics.win_rate * 100,
        )
        return BacktestResult(trades=trades, equity_curve=equity, metrics=metrics, reports=reports)
