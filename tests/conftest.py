"""
conftest.py - Shared pytest fixtures for roomvault tests

Provides common fixtures used across unit, functional and conformance tests:
- Basic ledgers (empty, currency-ready)
- Deployed engines with funded participants
- Rooms in each lifecycle status
- Comparison utilities
"""

import pytest
from typing import Dict, List, Tuple

from roomvault import (
    Ledger, SavingsEngine, AdminCap, Room,
    Strategy, SYSTEM_WALLET,
    cash,
)


PERIOD_MS = 1_000
DEPOSIT = 100
PARTICIPANTS = ("alice", "bob", "carol")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def fund(engine: SavingsEngine, address: str, amount: int, now_ms: int = 0) -> None:
    """Fund an address through the faucet, in cap-sized requests spaced by the cooldown."""
    faucet = engine.ledger.get_unit_state(engine.faucet_symbol)
    t = now_ms
    while amount > 0:
        chunk = min(amount, faucet['max_amount'])
        t = max(t, engine.ledger.current_time)
        engine.mint(address, chunk, now_ms=t)
        amount -= chunk
        t += faucet['cooldown_ms']


def non_system_total(ledger: Ledger, unit_symbol: str) -> int:
    """Sum of a unit's balances outside the system wallet."""
    return sum(
        qty for wallet, qty in ledger.get_positions(unit_symbol).items()
        if wallet != SYSTEM_WALLET
    )


def snapshot_equals(before: Dict, after: Dict) -> bool:
    """Compare two Ledger.state_snapshot() results, ignoring zero balances."""
    def strip(snap):
        return {
            'balances': {
                w: {u: q for u, q in b.items() if q != 0}
                for w, b in snap['balances'].items()
            },
            'states': snap['states'],
        }
    return strip(before) == strip(after)


def make_room(
    engine: SavingsEngine,
    cap: AdminCap,
    total_periods: int = 3,
    deposit_amount: int = DEPOSIT,
    strategy: Strategy = Strategy.NONE,
    start_time_ms: int = 0,
    period_length_ms: int = PERIOD_MS,
    start: bool = True,
    **kwargs,
) -> Room:
    room, _ = engine.create_room(
        total_periods, deposit_amount, strategy, start_time_ms, period_length_ms, **kwargs
    )
    if start:
        room = engine.start_room(cap, room.symbol)
    return room


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Ledger with nothing registered."""
    return Ledger("test", verbose=False)


@pytest.fixture
def coin_ledger():
    """Ledger with COIN registered and alice/bob wallets."""
    ledger = Ledger("test", verbose=False)
    ledger.register_unit(cash("COIN"))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger


@pytest.fixture
def deployed() -> Tuple[SavingsEngine, AdminCap]:
    """A quiet engine and its AdminCap, with alice, bob and carol holding 10_000 each."""
    engine, cap = SavingsEngine.deploy("test", verbose=False)
    for name in PARTICIPANTS:
        engine.mint(name, 10_000, now_ms=0)
    return engine, cap


@pytest.fixture
def engine(deployed) -> SavingsEngine:
    return deployed[0]


@pytest.fixture
def cap(deployed) -> AdminCap:
    return deployed[1]


@pytest.fixture
def active_room(engine, cap) -> Room:
    """ACTIVE 3-period room, deposit 100, no yield, starting at t=0."""
    return make_room(engine, cap)


@pytest.fixture
def joined_room(engine, active_room) -> Room:
    """active_room with alice, bob and carol joined in period 0."""
    for name in PARTICIPANTS:
        engine.join_room(active_room.symbol, name, now_ms=0, payment=DEPOSIT)
    return engine.get_room(active_room.symbol)
