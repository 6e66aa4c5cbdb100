"""Risk: entry gate, position sizing, TP/SL planning, open-position monitor."""

from autotrader.risk.gate import EntryGate, GateDecision, GateState, check_entry, is_aligned
from autotrader.risk.manager import RiskManager, RiskResult, SizingState, compute_targets
from autotrader.risk.monitor import (
    AggregateProfitRule,
    CloseDecision,
    FixedTargetRule,
    PositionMonitor,
    ProfitBoundsRule,
    TrailingPeakRule,
    build_monitor,
)
from autotrader.risk.sizing import (
    DAlembertSizing,
    FlatSizing,
    MartingaleSizing,
    SizingPolicy,
    build_sizing_policy,
)

__all__ = [
    "AggregateProfitRule",
    "CloseDecision",
    "DAlembertSizing",
    "EntryGate",
    "FixedTargetRule",
    "FlatSizing",
    "GateDecision",
    "GateState",
    "MartingaleSizing",
    "PositionMonitor",
    "ProfitBoundsRule",
    "RiskManager",
    "RiskResult",
    "SizingPolicy",
    "SizingState",
    "TrailingPeakRule",
    "build_monitor",
    "build_sizing_policy",
    "check_entry",
    "compute_targets",
    "is_aligned",
]
