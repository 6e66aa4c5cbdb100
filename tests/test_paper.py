"""Tests for execution.paper."""

from datetime import datetime, timedelta

import pytest

from autotrader.core.errors import ConnectivityError
from autotrader.core.types import Bar, SignalSide
from autotrader.execution.paper import PaperExecutionClient

T0 = datetime(2024, 1, 1, 10, 0)


def _bar(i, close, low=None, high=None, minutes=5):
    return Bar(T0 + timedelta(minutes=minutes * i), close,
               close if high is None else high, close if low is None else low, close, 1.0)


def test_fills_at_ask_and_bid():
    c = PaperExecutionClient(spread=0.2)
    c.push_bar("X", _bar(0, 100.0))
    long_ = c.open_position("X", SignalSide.LONG, 1.0)
    short = c.open_position("X", SignalSide.SHORT, 1.0)
    assert long_.avg_price == pytest.approx(100.1)
    assert short.avg_price == pytest.approx(99.9)
    # both marked at the opposite side of the book
    pnls = {p.id: p.unrealized_pnl for p in c.list_open_positions("X")}
    assert pnls[long_.position_id] == pytest.approx(-0.2)
    assert pnls[short.position_id] == pytest.approx(-0.2)


def test_short_take_profit_fires_on_bar_low():
    c = PaperExecutionClient()
    c.push_bar("X", _bar(0, 100.0))
    pid = c.open_position("X", SignalSide.SHORT, 2.0, stop_loss=101.0, take_profit=99.0).position_id
    c.push_bar("X", _bar(1, 99.5, low=98.8, high=99.9))
    assert c.list_open_positions("X") == []
    assert c.get_closed_pnl(pid) == pytest.approx(2.0)
    assert c.trades[-1].exit_reason == "take_profit"


def test_stop_checked_before_target():
    c = PaperExecutionClient()
    c.push_bar("X", _bar(0, 100.0))
    pid = c.open_position("X", SignalSide.LONG, 1.0, stop_loss=99.0, take_profit=101.0).position_id
    c.push_bar("X", _bar(1, 100.0, low=98.0, high=102.0))
    assert c.get_closed_pnl(pid) == pytest.approx(-1.0)


def test_close_position_reports_pnl():
    c = PaperExecutionClient()
    c.push_bar("X", _bar(0, 100.0))
    pid = c.open_position("X", SignalSide.LONG, 1.0).position_id
    c.push_bar("X", _bar(1, 100.7))
    result = c.close_position(pid)
    assert result.realized_pnl == pytest.approx(0.7)
    assert c.close_position(pid).success is False


def test_other_timeframes_are_resampled():
    c = PaperExecutionClient(timeframe="1m")
    for i in range(10):
        c.push_bar("X", _bar(i, 100.0 + i, minutes=1))
    five = c.get_historical_bars("X", "5m")
    assert [b.close for b in five] == [104.0, 109.0]
    assert len(c.get_historical_bars("X", "1m", limit=3)) == 3


def test_offline_raises():
    c = PaperExecutionClient()
    c.offline = True
    with pytest.raises(ConnectivityError):
        c.get_quote("X")
