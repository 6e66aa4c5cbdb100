"""Analytics: performance metrics (Sharpe, Sortino, MDD, win rate, etc.)."""

from autotrader.analytics.metrics import (
    PerformanceMetrics,
    compute_metrics,
    equity_curve,
    expectancy,
    max_drawdown,
    metrics_from_trades,
    profit_factor,
    sharpe_ratio,
    sortino_ratio,
    win_rate,
)

__all__ = [
    "PerformanceMetrics",
    "compute_metrics",
    "equity_curve",
    "expectancy",
    "max_drawdown",
    "metrics_from_trades",
    "profit_factor",
    "sharpe_ratio",
    "sortino_ratio",
    "win_rate",
]
