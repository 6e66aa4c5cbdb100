"""
Performance metrics of a replay: Sharpe, Sortino, max drawdown, win rate,
profit factor, expectancy. Returns are per trade, relative to the equity
before that trade.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import numpy as np

from autotrader.core.types import Trade


@dataclass
class PerformanceMetrics:
    """Aggregate performance metrics."""
    total_pnl: float
    total_return_pct: float
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown_pct: float
    win_rate: float
    profit_factor: float
    expectancy: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_win: float
    avg_loss: float
    exit_reasons: Dict[str, int] = field(default_factory=dict)


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sharpe. returns = list of period returns."""
    if len(returns) == 0:
        return 0.0
    excess = np.asarray(returns, dtype=float) - risk_free_rate / periods_per_year
    if excess.std() <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * excess.mean() / excess.std())


def sortino_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sortino (downside deviation). Falls back to Sharpe without losing periods."""
    if len(returns) == 0:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    downside = arr[arr < 0]
    if len(downside) == 0 or downside.std() <= 1e-12:
        return sharpe_ratio(returns, risk_free_rate, periods_per_year)
    return float(np.sqrt(periods_per_year) * excess.mean() / downside.std())


def max_drawdown(equity: Sequence[float]) -> float:
    """Max drawdown of an equity curve in percent (negative, e.g. -15.0)."""
    if len(equity) == 0:
        return 0.0
    arr = np.asarray(equity, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = (arr - peak) / np.where(peak != 0, peak, 1)
    return float(np.min(dd)) * 100.0


def win_rate(pnls: Sequence[float]) -> float:
    """Fraction of trades with positive PnL."""
    if len(pnls) == 0:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: Sequence[float]) -> float:
    """Gross profit / gross loss; inf with wins and no losses, 0 with neither."""
    wins = sum(p for p in pnls if p > 0)
    losses = sum(-p for p in pnls if p < 0)
    if losses <= 0:
        return float("inf") if wins > 0 else 0.0
    return wins / losses


def expectancy(pnls: Sequence[float]) -> float:
    """Average PnL per trade."""
    if len(pnls) == 0:
        return 0.0
    return sum(pnls) / len(pnls)


def equity_curve(pnls: Sequence[float], initial_capital: float = 1.0) -> List[float]:
    """Capital after each trade, starting with initial_capital."""
    return [initial_capital] + list(initial_capital + np.cumsum(pnls, dtype=float)) if len(pnls) else [initial_capital]


def compute_metrics(
    pnls: Sequence[float],
    initial_capital: float = 1.0,
    risk_free_rate: float = 0.0,
    periods_per_year: float = 252.0,
) -> PerformanceMetrics:
    """Full metrics from a list of trade PnLs in account currency."""
    pnls = [float(p) for p in pnls]
    if not pnls:
        return PerformanceMetrics(
            total_pnl=0.0, total_return_pct=0.0, sharpe_ratio=0.0, sortino_ratio=0.0, max_drawdown_pct=0.0,
            win_rate=0.0, profit_factor=0.0, expectancy=0.0,
            total_trades=0, winning_trades=0, losing_trades=0, avg_win=0.0, avg_loss=0.0,
        )
    curve = equity_curve(pnls, initial_capital)
    before = np.asarray(curve[:-1], dtype=float)
    rets = np.asarray(pnls) / np.where(before != 0, before, 1)
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    total = sum(pnls)
    return PerformanceMetrics(
        total_pnl=total,
        total_return_pct=total / initial_capital * 100.0 if initial_capital else 0.0,
        sharpe_ratio=sharpe_ratio(rets, risk_free_rate, periods_per_year),
        sortino_ratio=sortino_ratio(rets, risk_free_rate, periods_per_year),
        max_drawdown_pct=max_drawdown(curve),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
        total_trades=len(pnls),
        winning_trades=len(wins),
        losing_trades=len(losses),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
    )


def metrics_from_trades(trades: Sequence[Trade], initial_capital: float = 1.0, **kwargs) -> PerformanceMetrics:
    """compute_metrics over closed trades (in exit order), plus a count per exit reason."""
    ordered = sorted(trades, key=lambda t: (t.exit_time is None, t.exit_time))
    m = compute_metrics([t.pnl for t in ordered], initial_capital, **kwargs)
    reasons: Dict[str, int] = defaultdict(int)
    for t in ordered:
        reasons[t.exit_reason] += 1
    m.exit_reasons = dict(reasons)
    return m
