#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Savings Rooms Step by Step

A pedagogical walk through one savings round. Each step builds on the
previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Setup        - Deploying, the AdminCap, the faucet
  4-6:  Saving       - Creating a room, joining, per-period deposits
  7:    Guard rails  - What the room refuses and why nothing changes
  8-9:  Settlement   - Funding rewards, finalize, pro-rata claims
  10:   Yield        - Simulated yield and the principal shortfall it causes

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from roomvault import (
    SavingsEngine, Strategy, YIELD_FROM_PRINCIPAL,
    LedgerError, CooldownActive,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    period_ms: int = 86_400_000          # one day
    total_periods: int = 4
    deposit_amount: int = 1_000
    reward_funding: int = 9_000
    yield_strategy: Strategy = Strategy.AGGRESSIVE


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def day(n: int) -> int:
    return n * CONFIG.period_ms


# ============================================================================
# SETUP
# ============================================================================

def step_01_deploy():
    step_header(1, "Deploying",
        "One deployment = one ledger, one currency, one faucet, one AdminCap.")

    print(">>> engine, cap = SavingsEngine.deploy('tutorial')")
    engine, cap = SavingsEngine.deploy("tutorial", verbose=True)

    section_header("Key Insight")
    print(f"""
    The AdminCap ({cap!r}) is the only way to start, fund or finalize a
    room. It is checked by type and id, never by who is calling.
    """)
    return engine, cap


def step_02_faucet(engine: SavingsEngine):
    step_header(2, "The Faucet",
        "Test tokens come from the system wallet, rate-limited per address.")

    for name in ("alice", "bob", "treasury"):
        print(f">>> engine.mint({name!r}, 10_000, now_ms=0)")
        engine.mint(name, 10_000, now_ms=0)

    section_header("A second request too soon")
    try:
        engine.mint("alice", 100, now_ms=1_000)
    except CooldownActive as exc:
        print(f"Refused: {exc}")
    print(f"alice may mint again in {engine.time_until_next_mint('alice', now_ms=1_000)} ms")


def step_03_conservation(engine: SavingsEngine):
    step_header(3, "Conservation",
        "Every unit's balances, system wallet included, sum to zero.")
    result = engine.ledger.verify_double_entry()
    print(f"valid: {result['valid']}  supplies: {result['supplies']}")


# ============================================================================
# SAVING
# ============================================================================

def step_04_create_room(engine: SavingsEngine, cap):
    step_header(4, "Creating a Room",
        "A room fixes the schedule and the deposit amount up front.")

    room, vault = engine.create_room(
        CONFIG.total_periods, CONFIG.deposit_amount, Strategy.NONE, 0, CONFIG.period_ms,
    )
    engine.start_room(cap, room.symbol)
    print(f"Room {room.symbol}: {room.total_periods} periods x {room.deposit_amount}")
    print(f"Vault wallets: {vault.principal_wallet}, {vault.reward_wallet}")
    return room.symbol


def step_05_join(engine: SavingsEngine, room_symbol: str):
    step_header(5, "Joining",
        "Joining is only possible in period 0 and counts as the first deposit.")

    alice = engine.join_room(room_symbol, "alice", now_ms=0, payment=CONFIG.deposit_amount)
    bob = engine.join_room(room_symbol, "bob", now_ms=day(0) + 5_000, payment=CONFIG.deposit_amount)
    print(f"alice: {alice}")
    print(f"bob:   {bob}")
    return alice.symbol, bob.symbol


def step_06_deposits(engine: SavingsEngine, room_symbol: str, alice: str, bob: str):
    step_header(6, "Deposits",
        "One deposit per period; skipped periods cannot be made up later.")

    for period in range(1, CONFIG.total_periods):
        engine.deposit(alice, "alice", now_ms=day(period), payment=CONFIG.deposit_amount)
    engine.deposit(bob, "bob", now_ms=day(2), payment=CONFIG.deposit_amount)

    section_header("Weights")
    room = engine.get_room(room_symbol)
    print(f"total_weight = {room.total_weight}")


def step_07_guard_rails(engine: SavingsEngine, room_symbol: str, bob: str):
    step_header(7, "Guard Rails",
        "Refused operations raise and leave the ledger exactly as it was.")

    before = len(engine.ledger.transaction_log)
    attempts = [
        ("late join", lambda: engine.join_room(room_symbol, "treasury", day(3), CONFIG.deposit_amount)),
        ("backdated deposit", lambda: engine.deposit(bob, "bob", day(1), CONFIG.deposit_amount)),
        ("wrong amount", lambda: engine.deposit(bob, "bob", day(3), CONFIG.deposit_amount - 1)),
        ("early claim", lambda: engine.claim(bob, "bob")),
    ]
    for label, attempt in attempts:
        try:
            attempt()
        except LedgerError as exc:
            print(f"{label:18s} -> {type(exc).__name__}: {exc}")
    print(f"\nTransactions logged during this step: {len(engine.ledger.transaction_log) - before}")


# ============================================================================
# SETTLEMENT
# ============================================================================

def step_08_finalize(engine: SavingsEngine, cap, room_symbol: str):
    step_header(8, "Funding and Finalize",
        "finalize() freezes the weight and snapshots the reward pool.")

    engine.fund_reward_pool(cap, room_symbol, "treasury", CONFIG.reward_funding)
    room = engine.finalize_room(cap, room_symbol)
    print(f"status={room.status.value} weight={room.total_weight} reward_pool={room.final_reward_pool}")


def step_09_claims(engine: SavingsEngine, alice: str, bob: str):
    step_header(9, "Claims",
        "Principal back in full, reward split by deposit count, once.")

    for owner, psym in (("alice", alice), ("bob", bob)):
        principal, reward = engine.claim(psym, owner)
        print(f"{owner}: principal={principal} reward={reward} balance={engine.balance_of(owner)}")


def step_10_yield(engine: SavingsEngine, cap):
    step_header(10, "Simulated Yield",
        "Skimming yield out of principal leaves principal promises uncovered.")

    room, _ = engine.create_room(
        2, CONFIG.deposit_amount, CONFIG.yield_strategy, day(10), CONFIG.period_ms,
        yield_source=YIELD_FROM_PRINCIPAL,
    )
    engine.start_room(cap, room.symbol)
    a = engine.join_room(room.symbol, "alice", day(10), CONFIG.deposit_amount)
    b = engine.join_room(room.symbol, "bob", day(10), CONFIG.deposit_amount)
    engine.deposit(a.symbol, "alice", day(11), CONFIG.deposit_amount)
    engine.finalize_room(cap, room.symbol)

    print(f"vault: {engine.vault_balances(room.symbol)}")
    print(f"principal shortfall: {engine.principal_shortfall(room.symbol)}")
    for owner, psym in (("alice", a.symbol), ("bob", b.symbol)):
        try:
            print(f"{owner}: {engine.claim(psym, owner)}")
        except LedgerError as exc:
            print(f"{owner}: {type(exc).__name__}: {exc}")

    section_header("Key Insight")
    print("""
    Rooms created with yield_source="issuer" take simulated yield from the
    system wallet instead, and every claim is covered.
    """)


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       SAVINGS ROOMS - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    engine, cap = step_01_deploy()
    wait_for_enter()
    step_02_faucet(engine)
    wait_for_enter()
    step_03_conservation(engine)
    wait_for_enter()

    room_symbol = step_04_create_room(engine, cap)
    wait_for_enter()
    alice, bob = step_05_join(engine, room_symbol)
    wait_for_enter()
    step_06_deposits(engine, room_symbol, alice, bob)
    wait_for_enter()
    step_07_guard_rails(engine, room_symbol, bob)
    wait_for_enter()

    step_08_finalize(engine, cap, room_symbol)
    wait_for_enter()
    step_09_claims(engine, alice, bob)
    wait_for_enter()

    step_10_yield(engine, cap)
    wait_for_enter()

    step_03_conservation(engine)
    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See roomvault/units/*.py for the room, position and settlement rules
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
