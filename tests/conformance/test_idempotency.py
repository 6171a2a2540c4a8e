"""
Idempotency Conformance Tests

INVARIANT: Duplicate execution is detected and prevented.

    ∀ pending transaction T:
        execute(T) = APPLIED ⟹ execute(T) again = ALREADY_APPLIED
        state after second execute = state after first execute

A pending transaction built against state that has since changed is
rejected rather than applied on top of the newer state.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from roomvault import ExecuteResult, Strategy, position_symbol
from roomvault.units import compute_deposit, compute_fund_reward, compute_join

from tests.conftest import snapshot_equals
from tests.conformance.strategies import PERIOD_MS, Schedule, deploy_funded, run_schedule


class TestIdempotencyProperties:

    @given(st.integers(min_value=1, max_value=5))
    @settings(max_examples=20, deadline=None)
    def test_repeated_deposit_execution(self, num_repeats):
        """
        PROPERTY: Executing the same deposit N times applies it once.
        """
        schedule = Schedule(3, 100, ((),), 0)
        engine, cap, _ = deploy_funded(schedule)
        room_symbol, positions = run_schedule(engine, cap, schedule, finalize=False)
        engine.ledger.advance_time(PERIOD_MS)
        pending = compute_deposit(engine.ledger, positions["p0"], "p0", PERIOD_MS, 100)

        assert engine.ledger.execute(pending) == ExecuteResult.APPLIED
        after_first = engine.ledger.state_snapshot()
        for _ in range(num_repeats):
            assert engine.ledger.execute(pending) == ExecuteResult.ALREADY_APPLIED
        assert snapshot_equals(after_first, engine.ledger.state_snapshot())
        assert engine.get_room(room_symbol).total_weight == 2

    @given(st.integers(min_value=1, max_value=1_000))
    @settings(max_examples=20, deadline=None)
    def test_stale_build_rejected(self, amount):
        """
        PROPERTY: Two funding transactions built from the same view cannot
        both apply; the second is stale.
        """
        schedule = Schedule(1, 100, ((),), 0)
        engine, cap, _ = deploy_funded(schedule)
        room_symbol, _ = run_schedule(engine, cap, schedule, finalize=False)

        first = compute_fund_reward(engine.ledger, cap, room_symbol, "p0", amount)
        second = compute_fund_reward(engine.ledger, cap, room_symbol, "p0", amount + 1)
        assert engine.ledger.execute(first) == ExecuteResult.APPLIED
        assert engine.ledger.execute(second) == ExecuteResult.REJECTED
        assert "stale state" in str(engine.ledger.last_rejection)
        assert engine.vault_balances(room_symbol)['reward'] == amount

    def test_concurrent_join_builds(self):
        """
        Two joins built before either applies: the second is rejected because
        the room weight it recorded is out of date.
        """
        schedule = Schedule(1, 100, ((), ()), 0)
        engine, cap, _ = deploy_funded(schedule)
        room, _ = engine.create_room(1, 100, Strategy.NONE, 0, PERIOD_MS)
        engine.start_room(cap, room.symbol)

        a = compute_join(engine.ledger, room.symbol, "p0", 0, 100)
        b = compute_join(engine.ledger, room.symbol, "p1", 0, 100)
        assert engine.ledger.execute(a) == ExecuteResult.APPLIED
        assert engine.ledger.execute(b) == ExecuteResult.REJECTED
        assert not engine.ledger.has_unit(position_symbol(room.symbol, "p1"))
        assert engine.get_room(room.symbol).total_weight == 1
