"""Tests for EnergyGate: consume/refund bookkeeping and stepped recovery."""

import pytest

from kagami.agent.energy import EnergyGate, EnergyState
from kagami.agent.scheduling import ManualScheduler


def make_gate(max_energy=100, cost=20, rate=5, interval=60, current=None):
    scheduler = ManualScheduler()
    state = EnergyState.full(max_energy, cost, rate, interval)
    if current is not None:
        state.current = current
    return EnergyGate(state, scheduler), scheduler


# ── Consume / refund ─────────────────────────────────────────────────────


class TestConsumeRefund:

    def test_created_full(self):
        gate, _ = make_gate()
        assert gate.state.current == 100
        assert gate.status() == "100/100"

    def test_consume_subtracts_cost(self):
        gate, _ = make_gate()
        assert gate.consume() is True
        assert gate.state.current == 80

    def test_consume_is_all_or_nothing(self):
        gate, _ = make_gate(current=15)
        assert gate.can_afford() is False
        assert gate.consume() is False
        assert gate.state.current == 15

    def test_consume_exactly_cost(self):
        gate, _ = make_gate(current=20)
        assert gate.consume() is True
        assert gate.state.current == 0
        assert gate.can_afford() is False

    def test_consume_then_refund_is_neutral(self):
        gate, _ = make_gate(current=57)
        gate.consume()
        gate.refund()
        assert gate.state.current == 57

    def test_refund_capped_at_max(self):
        gate, _ = make_gate(current=95)
        gate.refund()
        assert gate.state.current == 100

    def test_status_formats_fractions(self):
        gate, _ = make_gate(max_energy=10, cost=0.5)
        gate.consume()
        assert gate.status() == "9.5/10"

    def test_negative_parameters_rejected(self):
        with pytest.raises(ValueError):
            EnergyState.full(max_energy=-1)


# ── Recovery ─────────────────────────────────────────────────────────────


class TestRecovery:

    def test_one_tick_per_interval(self):
        gate, scheduler = make_gate(current=50)
        scheduler.advance(59)
        assert gate.state.current == 50
        scheduler.advance(1)
        assert gate.state.current == 55

    def test_several_ticks(self):
        gate, scheduler = make_gate(current=50)
        fired = scheduler.advance(180)
        assert fired == 3
        assert gate.state.current == 65

    def test_recovery_capped_at_max(self):
        gate, scheduler = make_gate(current=98)
        scheduler.advance(600)
        assert gate.state.current == 100

    def test_recovery_independent_of_consume_time(self):
        gate, scheduler = make_gate(current=50)
        scheduler.advance(59)
        gate.consume()  # 30
        scheduler.advance(1)  # tick still lands at t=60
        assert gate.state.current == 35

    def test_close_stops_recovery(self):
        gate, scheduler = make_gate(current=50)
        gate.close()
        assert gate.closed
        assert scheduler.active_count == 0
        scheduler.advance(600)
        assert gate.state.current == 50

    def test_close_twice(self):
        gate, _ = make_gate()
        gate.close()
        gate.close()
        assert gate.closed
