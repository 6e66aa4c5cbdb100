"""
Entry gate: open-position cap, cooldown since the last entry, and
wall-clock alignment (act only when minute % N == 0).
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

logger = logging.getLogger("autotrader.risk.gate")


@dataclass(frozen=True)
class GateState:
    last_entry_time: Optional[datetime] = None


@dataclass(frozen=True)
class GateDecision:
    """Gate verdict plus the state to keep. On allow, last_entry_time == now."""
    allowed: bool
    state: GateState
    reason: str = ""
    previous: Optional[GateState] = None


def is_aligned(now: datetime, minute_multiple: int) -> bool:
    """True on N-minute marks. 0 or 1 disables the alignment gate."""
    if minute_multiple <= 1:
        return True
    return now.minute % minute_multiple == 0


def check_entry(
    state: GateState,
    now: datetime,
    open_positions: int,
    cooldown: timedelta,
    max_open_positions: int,
    minute_multiple: int = 0,
) -> GateDecision:
    """Pure gate evaluation. Recording the entry is part of the same decision."""
    if not is_aligned(now, minute_multiple):
        return GateDecision(False, state, f"minute {now.minute} not a multiple of {minute_multiple}")
    if open_positions >= max_open_positions:
        return GateDecision(False, state, f"{open_positions} open >= max {max_open_positions}")
    if state.last_entry_time is not None and now - state.last_entry_time < cooldown:
        remaining = cooldown - (now - state.last_entry_time)
        return GateDecision(False, state, f"cooldown, {remaining.total_seconds():.0f}s left")
    return GateDecision(True, replace(state, last_entry_time=now), previous=state)


class EntryGate:
    """Stateful wrapper around check_entry. Decide-and-record happens under one lock."""

    def __init__(
        self,
        cooldown: timedelta = timedelta(minutes=5),
        max_open_positions: int = 1,
        minute_multiple: int = 0,
    ):
        self.cooldown = cooldown
        self.max_open_positions = max_open_positions
        self.minute_multiple = minute_multiple
        self._state = GateState()
        self._lock = threading.Lock()

    @property
    def state(self) -> GateState:
        return self._state

    def try_enter(self, now: datetime, open_positions: int) -> GateDecision:
        with self._lock:
            decision = check_entry(
                self._state, now, open_positions,
                self.cooldown, self.max_open_positions, self.minute_multiple,
            )
            self._state = decision.state
        if decision.allowed:
            logger.debug("Entry gate open at %s", now.isoformat())
        else:
            logger.info("Entry gate closed: %s", decision.reason)
        return decision

    def can_enter(self, now: datetime, open_positions: int) -> bool:
        return self.try_enter(now, open_positions).allowed

    def rollback(self, decision: GateDecision) -> bool:
        """
        Undo an allowed decision whose entry never happened. Only restores the
        previous state if nothing has entered since; returns True when it did.
        """
        if not decision.allowed or decision.previous is None:
            return False
        with self._lock:
            if self._state is not decision.state:
                return False
            self._state = decision.previous
        logger.debug("Entry gate rolled back to %s", decision.previous.last_entry_time)
        return True
