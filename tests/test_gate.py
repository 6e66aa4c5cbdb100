"""Unit tests for risk.gate."""

import threading
from datetime import datetime, timedelta

from autotrader.risk.gate import EntryGate, GateState, check_entry, is_aligned

T0 = datetime(2024, 1, 1, 10, 0)


def test_allow_records_entry_time():
    d = check_entry(GateState(), T0, 0, timedelta(minutes=5), 1)
    assert d.allowed
    assert d.state.last_entry_time == T0


def test_deny_keeps_state():
    state = GateState(last_entry_time=T0)
    d = check_entry(state, T0 + timedelta(minutes=1), 0, timedelta(minutes=5), 1)
    assert not d.allowed
    assert d.state is state
    assert "cooldown" in d.reason


def test_max_open_positions():
    d = check_entry(GateState(), T0, 2, timedelta(0), 2)
    assert not d.allowed
    assert check_entry(GateState(), T0, 1, timedelta(0), 2).allowed


def test_cooldown_window():
    gate = EntryGate(cooldown=timedelta(minutes=5), max_open_positions=3)
    assert gate.can_enter(T0, 0)
    for seconds in (0, 1, 60, 299):
        assert not gate.can_enter(T0 + timedelta(seconds=seconds), 0)
    assert gate.can_enter(T0 + timedelta(minutes=5), 0)


def test_alignment_gate():
    assert is_aligned(datetime(2024, 1, 1, 10, 5), 5)
    assert not is_aligned(datetime(2024, 1, 1, 10, 7), 5)
    assert is_aligned(datetime(2024, 1, 1, 10, 7), 1)
    assert is_aligned(datetime(2024, 1, 1, 10, 7), 0)
    gate = EntryGate(cooldown=timedelta(0), max_open_positions=5, minute_multiple=5)
    assert not gate.can_enter(datetime(2024, 1, 1, 10, 3), 0)
    assert gate.can_enter(datetime(2024, 1, 1, 10, 5), 0)


def test_concurrent_callers_get_one_entry():
    gate = EntryGate(cooldown=timedelta(minutes=5), max_open_positions=10)
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(gate.try_enter(T0, 0).allowed)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(True) == 1
    assert gate.state.last_entry_time == T0


def test_rollback_restores_previous_entry_time():
    gate = EntryGate(cooldown=timedelta(minutes=10), max_open_positions=1)
    assert gate.can_enter(T0, 0)
    later = gate.try_enter(T0 + timedelta(minutes=10), 0)
    assert later.allowed
    assert gate.rollback(later)
    assert gate.state.last_entry_time == T0
    assert not gate.rollback(later)


def test_rollback_ignored_after_newer_entry():
    gate = EntryGate(cooldown=timedelta(0), max_open_positions=5)
    first = gate.try_enter(T0, 0)
    gate.try_enter(T0 + timedelta(minutes=1), 0)
    assert not gate.rollback(first)
    assert gate.state.last_entry_time == T0 + timedelta(minutes=1)


def test_rollback_of_denied_decision_is_noop():
    gate = EntryGate(cooldown=timedelta(minutes=5), max_open_positions=1)
    gate.try_enter(T0, 0)
    denied = gate.try_enter(T0 + timedelta(minutes=1), 0)
    assert not gate.rollback(denied)
    assert gate.state.last_entry_time == T0
