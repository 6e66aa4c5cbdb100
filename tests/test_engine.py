"""Tests for engine.trader: one cycle against the paper broker."""

from datetime import datetime, timedelta

import pytest

from autotrader.core.errors import ConnectivityError
from autotrader.core.types import Bar, SignalSide
from autotrader.data import MemoryBarStore
from autotrader.engine.trader import TradingEngine
from autotrader.execution.paper import PaperExecutionClient
from autotrader.risk.gate import EntryGate
from autotrader.risk.manager import RiskManager
from autotrader.risk.monitor import PositionMonitor, ProfitBoundsRule
from autotrader.risk.sizing import FlatSizing, MartingaleSizing
from autotrader.strategies import MomentumStrategy

SYMBOL = "LTCUSDT"
T0 = datetime(2024, 1, 1, 10, 0)


def _bar(i, close, low=None, high=None):
    return Bar(
        T0 + timedelta(minutes=5 * i), close,
        close if high is None else high,
        close if low is None else low,
        close,
    )


def _close_time(i):
    return T0 + timedelta(minutes=5 * (i + 1))


def _engine(client, policy=None, monitor=None, max_open=1, attach_mode="order", notify=None):
    return TradingEngine(
        symbol=SYMBOL,
        timeframe="5m",
        strategy=MomentumStrategy(),
        client=client,
        store=MemoryBarStore(),
        gate=EntryGate(cooldown=timedelta(0), max_open_positions=max_open),
        risk=RiskManager(policy or FlatSizing(1.0), take_profit=2.0, stop_loss=1.0, price_tick=0.001),
        monitor=monitor or PositionMonitor([]),
        attach_mode=attach_mode,
        notify=notify,
    )


def _client(closes, spread=0.0):
    client = PaperExecutionClient(timeframe="5m", spread=spread)
    for i, c in enumerate(closes):
        client.push_bar(SYMBOL, _bar(i, c))
    return client


def test_cycle_opens_on_actionable_signal():
    client = _client([100.0, 101.0])
    messages = []
    engine = _engine(client, notify=messages.append)
    report = engine.run_cycle(_close_time(1))
    assert report.signal.side == SignalSide.LONG
    assert report.opened == "P1"
    [pos] = client.list_open_positions(SYMBOL)
    assert pos.entry_price == 101.0
    assert pos.take_profit == pytest.approx(103.0)
    assert pos.stop_loss == pytest.approx(100.0)
    assert engine.risk.state.last_action == SignalSide.LONG
    assert len(engine.store.query_bars()) == 2
    assert any("opened" in m for m in messages)


def test_insufficient_history_skips_entry_only():
    client = _client([100.0])
    report = _engine(client).run_cycle(_close_time(0))
    assert report.signal is None
    assert report.opened is None
    assert client.list_open_positions(SYMBOL) == []


def test_gate_caps_open_positions():
    client = _client([100.0, 101.0])
    engine = _engine(client)
    engine.run_cycle(_close_time(1))
    client.push_bar(SYMBOL, _bar(2, 102.0))
    report = engine.run_cycle(_close_time(2))
    assert report.opened is None
    assert "max" in report.skip_reason
    assert len(client.list_open_positions(SYMBOL)) == 1


def test_monitor_close_feeds_sizing_before_entry():
    client = _client([100.0, 101.0])
    engine = _engine(client, policy=MartingaleSizing(1.0), monitor=PositionMonitor([ProfitBoundsRule(floor=-0.5)]))
    engine.run_cycle(_close_time(1))
    client.push_bar(SYMBOL, _bar(2, 100.4, low=100.3))
    report = engine.run_cycle(_close_time(2))

    [closed] = report.closed
    assert closed.position_id == "P1"
    assert closed.reason == "profit_floor"
    assert closed.realized_pnl == pytest.approx(-0.6)
    assert report.opened == "P2"
    [pos] = client.list_open_positions(SYMBOL)
    assert pos.side == SignalSide.SHORT
    assert pos.volume == pytest.approx(2.0)


def test_broker_side_exit_is_reconciled():
    client = _client([100.0, 101.0])
    engine = _engine(client, policy=MartingaleSizing(1.0))
    engine.run_cycle(_close_time(1))
    # stop at 100.0 is hit inside this bar
    client.push_bar(SYMBOL, _bar(2, 99.8, low=99.5, high=100.2))
    report = engine.run_cycle(_close_time(2))

    [closed] = report.closed
    assert closed.reason == "broker"
    assert closed.realized_pnl == pytest.approx(-1.0)
    assert engine.risk.state.current_volume == pytest.approx(2.0)
    assert client.list_open_positions(SYMBOL)[0].volume == pytest.approx(2.0)


def test_missing_position_id_aborts_entry():
    client = _client([100.0, 101.0])
    client.reject_next_open = True
    engine = _engine(client, policy=MartingaleSizing(1.0))
    report = engine.run_cycle(_close_time(1))
    assert report.opened is None
    assert "position id" in report.skip_reason
    state = engine.risk.state
    assert state.last_action is None
    assert state.last_entry_time is None
    assert state.current_volume == 1.0
    assert engine.gate.state.last_entry_time is None


def test_modify_mode_attaches_targets_from_fill():
    client = _client([100.0, 101.0], spread=0.2)
    engine = _engine(client, attach_mode="modify")
    report = engine.run_cycle(_close_time(1))
    assert report.opened == "P1"
    [pos] = client.list_open_positions(SYMBOL)
    assert pos.entry_price == pytest.approx(101.1)
    assert pos.take_profit == pytest.approx(103.3)
    assert pos.stop_loss == pytest.approx(99.9)


def test_connectivity_error_propagates_to_scheduler():
    client = _client([100.0, 101.0])
    client.offline = True
    with pytest.raises(ConnectivityError):
        _engine(client).run_cycle(_close_time(1))


def test_unknown_attach_mode():
    with pytest.raises(ValueError):
        _engine(_client([1.0]), attach_mode="later")


def test_aborted_entry_does_not_start_cooldown():
    client = _client([100.0, 101.0])
    client.reject_next_open = True
    engine = _engine(client)
    engine.gate = EntryGate(cooldown=timedelta(minutes=10), max_open_positions=1)
    assert engine.run_cycle(_close_time(1)).opened is None
    client.push_bar(SYMBOL, _bar(2, 102.0))
    report = engine.run_cycle(_close_time(2))
    assert report.opened == "P1"
    assert engine.gate.state.last_entry_time == _close_time(2)


def test_connectivity_error_on_open_rolls_back_gate():
    client = _client([100.0, 101.0])
    engine = _engine(client)
    engine.gate = EntryGate(cooldown=timedelta(minutes=10), max_open_positions=1)

    def offline_open(*args, **kwargs):
        raise ConnectivityError("order endpoint unreachable")
    client.open_position = offline_open
    with pytest.raises(ConnectivityError):
        engine.run_cycle(_close_time(1))
    assert engine.gate.state.last_entry_time is None


def test_risk_rejection_does_not_start_cooldown():
    client = _client([100.0, 101.0])
    engine = _engine(client)
    engine.gate = EntryGate(cooldown=timedelta(minutes=10), max_open_positions=1)
    engine.risk = RiskManager(
        FlatSizing(1.0), take_profit=2.0, stop_loss=1.0,
        symbol_info={"filters": [{"filterType": "LOT_SIZE", "minQty": "5", "stepSize": "1"}]},
    )
    report = engine.run_cycle(_close_time(1))
    assert report.skip_reason == "volume rounded to 0"
    assert engine.gate.state.last_entry_time is None
