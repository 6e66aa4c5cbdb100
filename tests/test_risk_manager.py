"""Unit tests for risk.manager."""

from datetime import datetime

import pytest

from autotrader.core.types import SignalSide
from autotrader.risk.manager import RiskManager, compute_targets
from autotrader.risk.sizing import FlatSizing, MartingaleSizing


def test_compute_targets_buy_with_spread():
    tp, sl = compute_targets(SignalSide.LONG, 150.000, 0.190, 0.090, 0.003)
    assert tp == pytest.approx(150.193)
    assert sl == pytest.approx(149.907)


def test_compute_targets_sell_mirrors():
    tp, sl = compute_targets(SignalSide.SHORT, 150.000, 0.190, 0.090, 0.003)
    assert tp == pytest.approx(149.807)
    assert sl == pytest.approx(150.093)


def test_compute_targets_zero_distance_means_no_level():
    tp, sl = compute_targets(SignalSide.LONG, 100.0, 0.0, 1.0)
    assert tp is None
    assert sl == pytest.approx(99.0)


def test_plan_entry_rounds_to_tick():
    rm = RiskManager(FlatSizing(0.01), take_profit=0.190, stop_loss=0.090, price_tick=0.001)
    r = rm.plan_entry(SignalSide.LONG, 150.000, spread=0.003)
    assert r.allowed is True
    assert r.quantity == pytest.approx(0.01)
    assert r.take_profit_price == 150.193
    assert r.stop_price == 149.907


def test_plan_entry_without_spread():
    rm = RiskManager(FlatSizing(0.01), take_profit=0.190, stop_loss=0.090, use_spread=False, price_tick=0.001)
    r = rm.plan_entry(SignalSide.LONG, 150.000, spread=0.003)
    assert r.take_profit_price == pytest.approx(150.190)
    assert r.stop_price == pytest.approx(149.910)


def test_plan_entry_no_price():
    rm = RiskManager(FlatSizing(0.01), take_profit=0.1, stop_loss=0.1)
    r = rm.plan_entry(SignalSide.LONG, 0.0)
    assert r.allowed is False
    assert "price" in r.reason


def test_plan_entry_volume_below_step_rejected():
    rm = RiskManager(FlatSizing(0.001), take_profit=0.1, stop_loss=0.1, volume_step=0.01)
    r = rm.plan_entry(SignalSide.LONG, 100.0)
    assert r.allowed is False


def test_scaled_targets_follow_volume_multiple():
    rm = RiskManager(MartingaleSizing(0.01), take_profit=0.1, stop_loss=0.05, scale_targets=True, price_tick=0.001)
    rm.record_close(-1.0)
    tp, sl = rm.targets(SignalSide.LONG, 100.0)
    assert tp == pytest.approx(100.2)
    assert sl == pytest.approx(99.9)


def test_record_close_feeds_policy():
    rm = RiskManager(MartingaleSizing(0.01), take_profit=0.1, stop_loss=0.1)
    assert rm.record_close(-0.5) is False
    assert rm.state.current_volume == pytest.approx(0.02)
    assert rm.record_close(0.0) is None
    assert rm.state.current_volume == pytest.approx(0.02)
    assert rm.record_close(None) is None
    assert rm.state.current_volume == pytest.approx(0.02)
    assert rm.record_close(0.3) is True
    assert rm.state.current_volume == pytest.approx(0.01)


def test_record_open_updates_state():
    rm = RiskManager(FlatSizing(0.01), take_profit=0.1, stop_loss=0.1)
    when = datetime(2024, 1, 1, 12, 0)
    rm.record_open(SignalSide.SHORT, when)
    s = rm.state
    assert s.last_action == SignalSide.SHORT
    assert s.last_entry_time == when
    assert s.base_volume == 0.01


def test_symbol_info_filters():
    info = {"filters": [
        {"filterType": "LOT_SIZE", "minQty": "0.1", "stepSize": "0.1"},
        {"filterType": "PRICE_FILTER", "tickSize": "0.01"},
    ]}
    rm = RiskManager(FlatSizing(0.25), take_profit=1.0, stop_loss=1.0, symbol_info=info)
    r = rm.plan_entry(SignalSide.LONG, 100.0)
    assert r.quantity == pytest.approx(0.2)
