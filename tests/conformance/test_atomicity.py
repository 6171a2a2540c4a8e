"""
Atomicity Conformance Tests

INVARIANT: Operations are all-or-nothing.

    ∀ operation O:
        O raises ⟹ balances and unit states are exactly as before O

Covers both kinds of failure: domain errors raised while building the
transaction, and ledger rejections at execution time.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from roomvault import (
    Strategy, AdminCap, LedgerError,
    AmountInvalid, AlreadyJoined, InsufficientBalance,
    AlreadyDeposited, RoomNotFinished, JoinClosed, Unauthorized,
)

from tests.conftest import snapshot_equals
from tests.conformance.strategies import (
    PERIOD_MS, Schedule, schedules, deploy_funded, run_schedule,
)


EXPECTED = {
    "wrong_payment": AmountInvalid,
    "duplicate_join": AlreadyJoined,
    "late_join": JoinClosed,
    "repeat_deposit": AlreadyDeposited,
    "early_claim": RoomNotFinished,
    "foreign_cap": Unauthorized,
    "overdrawn_payer": InsufficientBalance,
    "overdrawn_joiner": InsufficientBalance,
}


def _attempt(engine, cap, room_symbol, positions, schedule, failure):
    name, psym = next(iter(positions.items()))
    deposit = schedule.deposit_amount
    if failure == "wrong_payment":
        engine.join_room(room_symbol, "newcomer", now_ms=0, payment=deposit + 1)
    elif failure == "duplicate_join":
        engine.join_room(room_symbol, name, now_ms=0, payment=deposit)
    elif failure == "late_join":
        engine.join_room(room_symbol, "newcomer", now_ms=schedule.total_periods * PERIOD_MS, payment=deposit)
    elif failure == "repeat_deposit":
        engine.deposit(psym, name, now_ms=0, payment=deposit)
    elif failure == "early_claim":
        engine.claim(psym, name)
    elif failure == "foreign_cap":
        engine.finalize_room(AdminCap("forged"), room_symbol)
    elif failure == "overdrawn_payer":
        engine.fund_reward_pool(cap, room_symbol, "newcomer", 1)
    elif failure == "overdrawn_joiner":
        engine.join_room(room_symbol, "newcomer", now_ms=0, payment=deposit)


class TestAtomicityProperties:

    @given(schedules(), st.sampled_from(sorted(EXPECTED)))
    @settings(max_examples=60, deadline=None)
    def test_failed_operation_leaves_no_trace(self, schedule, failure):
        """
        PROPERTY: A failing operation changes no balance, no unit state and
        appends nothing to the transaction log.
        """
        engine, cap, _ = deploy_funded(schedule)
        engine.register_participant("newcomer")
        room_symbol, positions = run_schedule(engine, cap, schedule, finalize=False)

        before = engine.ledger.state_snapshot()
        units_before = engine.ledger.list_units()
        log_length = len(engine.ledger.transaction_log)
        with pytest.raises(EXPECTED[failure]):
            _attempt(engine, cap, room_symbol, positions, schedule, failure)
        assert snapshot_equals(before, engine.ledger.state_snapshot())
        assert engine.ledger.list_units() == units_before
        assert len(engine.ledger.transaction_log) == log_length

    @given(st.integers(min_value=1, max_value=4))
    @settings(max_examples=20, deadline=None)
    def test_rejected_claim_keeps_position_claimable(self, joiners):
        """
        PROPERTY: A claim the principal pool cannot cover leaves the position
        unclaimed and the room's claimed weight unchanged.
        """
        plans = tuple(() for _ in range(joiners)) + ((1,),)
        schedule = Schedule(2, 1_000, plans, 0)
        engine, cap, _ = deploy_funded(schedule)
        room_symbol, positions = run_schedule(engine, cap, schedule, Strategy.AGGRESSIVE)

        failed = 0
        for name, psym in positions.items():
            claimed_weight = engine.get_room(room_symbol).claimed_weight
            try:
                engine.claim(psym, name)
            except LedgerError:
                failed += 1
                assert engine.get_position(room_symbol, name).claimed is False
                assert engine.get_room(room_symbol).claimed_weight == claimed_weight
        assert failed >= 1
