"""
test_positions.py - Unit tests for join and deposit

Tests:
- compute_join outputs and precondition order
- deposit window rules through the engine
- owner checks
"""

import pytest

from roomvault import (
    AdminCap, Move, SYSTEM_WALLET, UNIT_TYPE_ROOM_POSITION, Strategy,
    InvalidState, NotYetStarted, PeriodInvalid, JoinClosed, AmountInvalid,
    AlreadyDeposited, AlreadyJoined, NotPositionOwner, InsufficientBalance,
    position_symbol,
)
from roomvault.units import create_room_unit, create_position_unit, compute_join
from tests.conftest import make_room, DEPOSIT, PERIOD_MS
from tests.fake_view import FakeView


def _view(status="ACTIVE", start_time_ms=0, principal=0, strategy=Strategy.NONE, joined=()):
    room = create_room_unit("ROOM_1", 3, 100, strategy, start_time_ms, 1_000, "cap")
    units = {"ROOM_1": room}
    for owner in joined:
        pos = create_position_unit("ROOM_1", owner)
        units[pos.symbol] = pos
    return FakeView(
        balances={
            "ROOM_1:principal": {"COIN": principal},
            "alice": {"COIN": 1_000},
        },
        states={"ROOM_1": {**room.state, 'status': status}},
        units=units,
    )


class TestComputeJoin:

    def test_join_outputs(self):
        pending = compute_join(_view(), "ROOM_1", "alice", 0, 100)
        (unit,) = pending.units_to_create
        assert unit.symbol == "POS:ROOM_1:alice"
        assert unit.unit_type == UNIT_TYPE_ROOM_POSITION
        assert unit.max_balance == 1
        assert unit.state == {
            'room': "ROOM_1", 'owner': "alice",
            'deposited_count': 1, 'last_period': 0, 'claimed': False,
        }
        assert Move(100, "COIN", "alice", "ROOM_1:principal", "join_ROOM_1_alice") in pending.moves
        assert Move(1, unit.symbol, SYSTEM_WALLET, "alice", "position_ROOM_1_alice") in pending.moves
        (sc,) = pending.state_changes
        assert sc.changed_fields() == {'total_weight': (0, 1)}
        assert pending.origin.event_type == "JOIN"

    def test_join_skims_pre_deposit_principal(self):
        pending = compute_join(
            _view(principal=1_000, strategy=Strategy.AGGRESSIVE), "ROOM_1", "alice", 0, 100
        )
        assert pending.moves[0] == Move(
            15, "COIN", "ROOM_1:principal", "ROOM_1:reward", "yield_skim_ROOM_1"
        )
        (sc,) = pending.state_changes
        assert sc.new_state['total_skimmed'] == 15

    def test_join_late_in_period_zero(self):
        assert compute_join(_view(), "ROOM_1", "alice", 999, 100).units_to_create

    @pytest.mark.parametrize("now_ms", [1_000, 1_500, 2_999, 50_000])
    def test_join_closed_after_period_zero(self, now_ms):
        with pytest.raises(JoinClosed):
            compute_join(_view(), "ROOM_1", "alice", now_ms, 100)

    def test_join_closed_is_period_invalid(self):
        with pytest.raises(PeriodInvalid):
            compute_join(_view(), "ROOM_1", "alice", 1_000, 100)

    @pytest.mark.parametrize("status", ["OPEN", "FINISHED"])
    def test_join_requires_active(self, status):
        with pytest.raises(InvalidState):
            compute_join(_view(status=status), "ROOM_1", "alice", 0, 100)

    def test_join_before_start(self):
        with pytest.raises(NotYetStarted):
            compute_join(_view(start_time_ms=5_000), "ROOM_1", "alice", 4_000, 100)

    @pytest.mark.parametrize("payment", [0, 99, 101])
    def test_join_exact_payment(self, payment):
        with pytest.raises(AmountInvalid):
            compute_join(_view(), "ROOM_1", "alice", 0, payment)

    def test_join_twice(self):
        with pytest.raises(AlreadyJoined):
            compute_join(_view(joined=("alice",)), "ROOM_1", "alice", 0, 100)

    def test_position_symbol(self):
        assert position_symbol("ROOM_7", "bob") == "POS:ROOM_7:bob"


class TestDeposit:

    def test_deposit_next_period(self, engine, joined_room):
        psym = position_symbol(joined_room.symbol, "alice")
        pos = engine.deposit(psym, "alice", now_ms=PERIOD_MS, payment=DEPOSIT)
        assert pos.deposited_count == 2
        assert pos.last_period == 1
        assert engine.get_room(joined_room.symbol).total_weight == 4
        assert engine.vault_balances(joined_room.symbol)['principal'] == 400

    def test_skipped_period_cannot_be_caught_up(self, engine, joined_room):
        psym = position_symbol(joined_room.symbol, "alice")
        engine.deposit(psym, "alice", now_ms=2 * PERIOD_MS, payment=DEPOSIT)
        with pytest.raises(AlreadyDeposited):
            engine.deposit(psym, "alice", now_ms=PERIOD_MS, payment=DEPOSIT)
        assert engine.get_position(joined_room.symbol, "alice").deposited_count == 2

    def test_second_deposit_same_period(self, engine, joined_room):
        psym = position_symbol(joined_room.symbol, "bob")
        engine.deposit(psym, "bob", now_ms=PERIOD_MS, payment=DEPOSIT)
        with pytest.raises(AlreadyDeposited):
            engine.deposit(psym, "bob", now_ms=PERIOD_MS + 500, payment=DEPOSIT)

    def test_deposit_in_join_period(self, engine, joined_room):
        psym = position_symbol(joined_room.symbol, "bob")
        with pytest.raises(AlreadyDeposited):
            engine.deposit(psym, "bob", now_ms=0, payment=DEPOSIT)

    def test_deposit_after_last_period(self, engine, joined_room):
        psym = position_symbol(joined_room.symbol, "carol")
        with pytest.raises(PeriodInvalid):
            engine.deposit(psym, "carol", now_ms=3 * PERIOD_MS, payment=DEPOSIT)

    def test_deposit_wrong_amount(self, engine, joined_room):
        psym = position_symbol(joined_room.symbol, "carol")
        with pytest.raises(AmountInvalid):
            engine.deposit(psym, "carol", now_ms=PERIOD_MS, payment=DEPOSIT * 2)

    def test_deposit_by_non_owner(self, engine, joined_room):
        psym = position_symbol(joined_room.symbol, "carol")
        with pytest.raises(NotPositionOwner):
            engine.deposit(psym, "alice", now_ms=PERIOD_MS, payment=DEPOSIT)

    def test_deposit_after_finalize(self, engine, cap, joined_room):
        engine.finalize_room(cap, joined_room.symbol)
        psym = position_symbol(joined_room.symbol, "alice")
        with pytest.raises(InvalidState):
            engine.deposit(psym, "alice", now_ms=PERIOD_MS, payment=DEPOSIT)

    def test_deposit_without_funds(self, engine, cap):
        room = make_room(engine, cap, deposit_amount=6_000)
        engine.join_room(room.symbol, "alice", now_ms=0, payment=6_000)
        psym = position_symbol(room.symbol, "alice")
        with pytest.raises(InsufficientBalance):
            engine.deposit(psym, "alice", now_ms=PERIOD_MS, payment=6_000)
        assert engine.get_position(room.symbol, "alice").deposited_count == 1
        assert engine.get_room(room.symbol).total_weight == 1
