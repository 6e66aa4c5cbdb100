"""Unit tests for risk.monitor."""

import pytest

from autotrader.core.types import Position, Quote, SignalSide
from autotrader.risk.monitor import (
    AggregateProfitRule,
    FixedTargetRule,
    PositionMonitor,
    ProfitBoundsRule,
    TrailingPeakRule,
    build_monitor,
)


def _pos(pid="P1", side=SignalSide.LONG, pnl=0.0, entry=150.0, sl=None, tp=None):
    return Position(
        id=pid, symbol="LTCUSDT", side=side, volume=0.01, entry_price=entry,
        unrealized_pnl=pnl, stop_loss=sl, take_profit=tp,
    )


def test_trailing_closes_after_half_retracement():
    m = PositionMonitor([TrailingPeakRule(0.5)])
    assert m.evaluate([_pos(pnl=1.0)]) == []
    assert m.evaluate([_pos(pnl=2.0)]) == []
    assert m.evaluate([_pos(pnl=1.5)]) == []
    assert m.peak("P1") == 2.0
    decisions = m.evaluate([_pos(pnl=0.9)])
    assert len(decisions) == 1
    assert decisions[0].reason == "trailing_peak"
    assert decisions[0].profit == pytest.approx(0.9)


def test_trailing_not_armed_without_profit():
    m = PositionMonitor([TrailingPeakRule(0.5)])
    assert m.evaluate([_pos(pnl=-0.5)]) == []
    assert m.evaluate([_pos(pnl=-1.0)]) == []
    assert m.peak("P1") == 0.0


def test_peak_is_monotonic_and_pruned():
    m = PositionMonitor([])
    m.observe([_pos(pnl=3.0)])
    m.observe([_pos(pnl=1.0)])
    assert m.peak("P1") == 3.0
    m.observe([])
    assert m.peak("P1") == 0.0


def test_fixed_targets_long_uses_bid():
    rule = FixedTargetRule()
    p = _pos(sl=149.907, tp=150.193)
    assert rule.evaluate([p], {}, Quote(bid=150.10, ask=150.20)) == []
    hit = rule.evaluate([p], {}, Quote(bid=150.20, ask=150.21))
    assert hit[0].reason == "take_profit"
    stop = rule.evaluate([p], {}, Quote(bid=149.90, ask=149.91))
    assert stop[0].reason == "stop_loss"


def test_fixed_targets_short_uses_ask():
    rule = FixedTargetRule()
    p = _pos(side=SignalSide.SHORT, sl=150.093, tp=149.807)
    assert rule.evaluate([p], {}, Quote(bid=149.80, ask=149.85)) == []
    assert rule.evaluate([p], {}, Quote(bid=149.79, ask=149.80))[0].reason == "take_profit"
    assert rule.evaluate([p], {}, Quote(bid=150.09, ask=150.10))[0].reason == "stop_loss"


def test_fixed_targets_without_quote():
    assert FixedTargetRule().evaluate([_pos(sl=1.0, tp=2.0)], {}, None) == []


def test_aggregate_target_closes_everything():
    rule = AggregateProfitRule(1.0)
    positions = [_pos("A", pnl=0.7), _pos("B", pnl=-0.2), _pos("C", pnl=0.6)]
    decisions = rule.evaluate(positions, {}, None)
    assert {d.position_id for d in decisions} == {"A", "B", "C"}
    assert rule.evaluate([_pos("A", pnl=0.5)], {}, None) == []


def test_profit_bounds():
    rule = ProfitBoundsRule(floor=-1.0, ceiling=2.0)
    decisions = rule.evaluate([_pos("A", pnl=-1.2), _pos("B", pnl=2.0), _pos("C", pnl=0.5)], {}, None)
    assert [(d.position_id, d.reason) for d in decisions] == [("A", "profit_floor"), ("B", "profit_ceiling")]


def test_one_decision_per_position():
    m = PositionMonitor([ProfitBoundsRule(ceiling=1.0), AggregateProfitRule(1.0)])
    decisions = m.evaluate([_pos("A", pnl=1.5)])
    assert len(decisions) == 1
    assert decisions[0].reason == "profit_ceiling"


def test_build_monitor_rules():
    m = build_monitor(fixed_targets=True, trailing_fraction=0.5, aggregate_profit_target=1.0)
    kinds = [type(r) for r in m.rules]
    assert kinds == [FixedTargetRule, TrailingPeakRule, AggregateProfitRule]
    assert build_monitor(fixed_targets=False).rules == []


def test_trailing_fraction_validated():
    with pytest.raises(ValueError):
        TrailingPeakRule(1.0)
