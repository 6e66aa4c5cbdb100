"""Unit tests for analytics.metrics."""

from datetime import datetime, timedelta

import pytest

from autotrader.analytics.metrics import (
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
from autotrader.core.types import SignalSide, Trade


def test_sharpe_ratio_empty():
    assert sharpe_ratio([]) == 0.0


def test_sharpe_ratio_constant():
    assert sharpe_ratio([0.01] * 10) == 0.0  # zero std


def test_sortino_without_losses_falls_back_to_sharpe():
    rets = [0.01, 0.02, 0.03]
    assert sortino_ratio(rets) == pytest.approx(sharpe_ratio(rets))


def test_win_rate():
    assert win_rate([1, -1, 1, 1]) == 0.75
    assert win_rate([]) == 0.0


def test_profit_factor():
    assert profit_factor([10, -5, 10, -5]) == 2.0
    assert profit_factor([10, 10]) == float("inf")
    assert profit_factor([-5, -5]) == 0.0


def test_expectancy():
    assert expectancy([10, -5, 5]) == pytest.approx(10 / 3)
    assert expectancy([]) == 0.0


def test_max_drawdown():
    # equity 1 -> 1.2 -> 1.0 -> 1.1  =>  peak 1.2, dd (1.0-1.2)/1.2 = -16.67%
    assert max_drawdown([1.0, 1.2, 1.0, 1.1]) == pytest.approx(-16.666, rel=0.01)


def test_equity_curve():
    assert equity_curve([10.0, -5.0], 100.0) == pytest.approx([100.0, 110.0, 105.0])
    assert equity_curve([], 100.0) == [100.0]


def test_compute_metrics():
    m = compute_metrics([10.0, -5.0, 15.0, -3.0], initial_capital=100.0)
    assert m.total_trades == 4
    assert m.winning_trades == 2
    assert m.losing_trades == 2
    assert m.total_pnl == pytest.approx(17.0)
    assert m.total_return_pct == pytest.approx(17.0)
    assert m.expectancy == pytest.approx(4.25)
    assert m.win_rate == 0.5
    assert m.avg_loss == pytest.approx(-4.0)
    # 110 -> 105
    assert m.max_drawdown_pct == pytest.approx(-100 * 5 / 110)


def test_compute_metrics_empty():
    m = compute_metrics([])
    assert m.total_trades == 0
    assert m.profit_factor == 0.0


def test_metrics_from_trades_counts_exit_reasons():
    t0 = datetime(2024, 1, 1)

    def trade(i, pnl, reason):
        return Trade("LTCUSDT", SignalSide.LONG, 0.01, 100.0, 100.0, pnl, t0, t0 + timedelta(minutes=i), reason)

    m = metrics_from_trades([
        trade(2, -1.0, "stop_loss"),
        trade(1, 2.0, "take_profit"),
        trade(3, 0.5, "trailing_peak"),
        trade(4, 1.0, "take_profit"),
    ], initial_capital=10.0)
    assert m.total_trades == 4
    assert m.exit_reasons == {"take_profit": 2, "stop_loss": 1, "trailing_peak": 1}
    # exit order: +2, -1, +0.5, +1 -> equity 10, 12, 11, 11.5, 12.5
    assert m.max_drawdown_pct == pytest.approx(-100 / 12)
