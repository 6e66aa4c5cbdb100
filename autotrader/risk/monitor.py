"""
Position monitor: decides keep-open vs close-now for each open position, every cycle.

Rules:
- FixedTargetRule: price crossed the position's TP or SL level.
- TrailingPeakRule: profit fell to <= fraction * peak profit since open.
- AggregateProfitRule: summed profit across positions reached a target; close all.
- ProfitBoundsRule: profit at or beyond a fixed floor / ceiling.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from autotrader.core.types import Position, Quote, SignalSide

logger = logging.getLogger("autotrader.risk.monitor")


@dataclass(frozen=True)
class CloseDecision:
    position_id: str
    reason: str
    profit: float


class ExitRule(ABC):
    """One exit condition. Pure: reads positions, peaks and quote only."""

    @abstractmethod
    def evaluate(
        self,
        positions: Sequence[Position],
        peaks: Mapping[str, float],
        quote: Optional[Quote],
    ) -> List[CloseDecision]:
        pass


class FixedTargetRule(ExitRule):
    """Close when the exit-side price reaches the position's TP or SL."""

    def evaluate(self, positions, peaks, quote):
        if quote is None:
            return []
        out = []
        for p in positions:
            price = quote.exit_price(p.side)
            reason = None
            if p.side == SignalSide.LONG:
                if p.take_profit is not None and price >= p.take_profit:
                    reason = "take_profit"
                elif p.stop_loss is not None and price <= p.stop_loss:
                    reason = "stop_loss"
            else:
                if p.take_profit is not None and price <= p.take_profit:
                    reason = "take_profit"
                elif p.stop_loss is not None and price >= p.stop_loss:
                    reason = "stop_loss"
            if reason:
                out.append(CloseDecision(p.id, reason, p.unrealized_pnl))
        return out


class TrailingPeakRule(ExitRule):
    """Lock in gains: close once profit retraces to `fraction` of its peak. Armed when peak > 0."""

    def __init__(self, fraction: float = 0.5):
        if not 0.0 <= fraction < 1.0:
            raise ValueError("fraction must be in [0, 1)")
        self.fraction = fraction

    def evaluate(self, positions, peaks, quote):
        out = []
        for p in positions:
            peak = peaks.get(p.id, 0.0)
            if peak > 0 and p.unrealized_pnl <= peak * self.fraction:
                out.append(CloseDecision(p.id, "trailing_peak", p.unrealized_pnl))
        return out


class AggregateProfitRule(ExitRule):
    """Close every position once their summed profit reaches `target`."""

    def __init__(self, target: float):
        self.target = target

    def evaluate(self, positions, peaks, quote):
        if not positions:
            return []
        total = sum(p.unrealized_pnl for p in positions)
        if total < self.target:
            return []
        return [CloseDecision(p.id, "aggregate_target", p.unrealized_pnl) for p in positions]


class ProfitBoundsRule(ExitRule):
    """Close at a fixed loss floor or win ceiling, independent of price levels."""

    def __init__(self, floor: Optional[float] = None, ceiling: Optional[float] = None):
        self.floor = floor
        self.ceiling = ceiling

    def evaluate(self, positions, peaks, quote):
        out = []
        for p in positions:
            if self.floor is not None and p.unrealized_pnl <= self.floor:
                out.append(CloseDecision(p.id, "profit_floor", p.unrealized_pnl))
            elif self.ceiling is not None and p.unrealized_pnl >= self.ceiling:
                out.append(CloseDecision(p.id, "profit_ceiling", p.unrealized_pnl))
        return out


class PositionMonitor:
    """Tracks peak profit per position and applies exit rules in order."""

    def __init__(self, rules: Sequence[ExitRule]):
        self.rules = list(rules)
        self._peaks: Dict[str, float] = {}

    def peak(self, position_id: str) -> float:
        return self._peaks.get(position_id, 0.0)

    def observe(self, positions: Sequence[Position]) -> None:
        """Update running peaks; forget positions no longer open."""
        live = {p.id for p in positions}
        for pid in list(self._peaks):
            if pid not in live:
                del self._peaks[pid]
        for p in positions:
            self._peaks[p.id] = max(self._peaks.get(p.id, 0.0), p.unrealized_pnl)

    def evaluate(self, positions: Sequence[Position], quote: Optional[Quote] = None) -> List[CloseDecision]:
        """Close decisions for this cycle, at most one per position (first rule wins)."""
        self.observe(positions)
        decisions: List[CloseDecision] = []
        seen = set()
        for rule in self.rules:
            for d in rule.evaluate(positions, self._peaks, quote):
                if d.position_id not in seen:
                    seen.add(d.position_id)
                    decisions.append(d)
        for d in decisions:
            logger.info(
                "Close %s: %s (profit=%.4f, peak=%.4f)",
                d.position_id, d.reason, d.profit, self.peak(d.position_id),
            )
        return decisions

    def forget(self, position_id: str) -> None:
        self._peaks.pop(position_id, None)


def build_monitor(
    fixed_targets: bool = True,
    trailing_fraction: float = 0.0,
    aggregate_profit_target: float = 0.0,
    profit_floor: Optional[float] = None,
    profit_ceiling: Optional[float] = None,
) -> PositionMonitor:
    """Monitor with the rules enabled by configuration (0 / None disables a rule)."""
    rules: List[ExitRule] = []
    if profit_floor is not None or profit_ceiling is not None:
        rules.append(ProfitBoundsRule(profit_floor, profit_ceiling))
    if fixed_targets:
        rules.append(FixedTargetRule())
    if trailing_fraction > 0:
        rules.append(TrailingPeakRule(trailing_fraction))
    if aggregate_profit_target > 0:
        rules.append(AggregateProfitRule(aggregate_profit_target))
    return PositionMonitor(rules)
