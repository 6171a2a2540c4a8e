"""
room.py - Savings Room Lifecycle

A room is one savings round: a fixed schedule, a fixed deposit amount and a
two-pool vault. It is stored as a SAVINGS_ROOM unit whose state carries the
room terms and counters. It never holds balances itself.

=== STATE MACHINE ===

    OPEN --start()--> ACTIVE --finalize()--> FINISHED

Status only ever advances. total_weight (the number of accepted deposit
actions) only grows while ACTIVE and is frozen by finalize().

=== PERIOD CLOCK ===

    current_period = (now_ms - start_time_ms) // period_length_ms

Period 0 is the join window. Every time-gated operation uses current_period().

=== ADMIN OPERATIONS ===

start, fund_reward and finalize take the deployment's AdminCap. finalize runs
one last yield skim and snapshots the reward pool that claims are split from.

All compute_* functions take a LedgerView and return a PendingTransaction.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..core import (
    LedgerView, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    UNIT_TYPE_SAVINGS_ROOM, DEFAULT_CURRENCY,
    InvalidState, NotYetStarted, ZeroWeight, UnitNotRegistered,
    build_transaction, require_admin, _freeze_state,
)
from .reward import (
    Strategy, YIELD_FROM_PRINCIPAL, YIELD_SOURCES,
    compute_yield_skim, skimmed_amount,
)
from .vault import Vault, REWARD, create_vault, credit, require_participant_wallet


class RoomStatus(Enum):
    OPEN = "OPEN"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"


@dataclass(frozen=True, slots=True)
class Room:
    """
    Typed read of a SAVINGS_ROOM unit's state.

    final_reward_pool is None until the room is finalized.
    """
    symbol: str
    total_periods: int
    deposit_amount: int
    strategy: Strategy
    status: RoomStatus
    start_time_ms: int
    period_length_ms: int
    total_weight: int
    currency: str
    admin_cap_id: str
    principal_wallet: str
    reward_wallet: str
    yield_source: str
    total_funded: int
    total_skimmed: int
    claimed_weight: int
    final_reward_pool: Optional[int]

    @classmethod
    def from_state(cls, symbol: str, state: dict) -> Room:
        return cls(
            symbol=symbol,
            total_periods=state['total_periods'],
            deposit_amount=state['deposit_amount'],
            strategy=Strategy(state['strategy_id']),
            status=RoomStatus(state['status']),
            start_time_ms=state['start_time_ms'],
            period_length_ms=state['period_length_ms'],
            total_weight=state['total_weight'],
            currency=state['currency'],
            admin_cap_id=state['admin_cap_id'],
            principal_wallet=state['principal_wallet'],
            reward_wallet=state['reward_wallet'],
            yield_source=state['yield_source'],
            total_funded=state['total_funded'],
            total_skimmed=state['total_skimmed'],
            claimed_weight=state['claimed_weight'],
            final_reward_pool=state['final_reward_pool'],
        )

    @property
    def vault(self) -> Vault:
        return Vault(
            room=self.symbol,
            principal_wallet=self.principal_wallet,
            reward_wallet=self.reward_wallet,
            currency=self.currency,
        )


def _require_positive(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")


def create_room_unit(
    symbol: str,
    total_periods: int,
    deposit_amount: int,
    strategy: Strategy,
    start_time_ms: int,
    period_length_ms: int,
    admin_cap_id: str,
    currency: str = DEFAULT_CURRENCY,
    yield_source: str = YIELD_FROM_PRINCIPAL,
) -> Unit:
    """
    Create a SAVINGS_ROOM unit in OPEN status with an empty weight counter.

    Args:
        symbol: Unique room identifier (e.g., "ROOM_1")
        total_periods: Number of deposit periods, at least 1
        deposit_amount: Exact payment required per deposit action
        strategy: Simulated yield strategy
        start_time_ms: Start of period 0 (ms)
        period_length_ms: Length of one period (ms)
        admin_cap_id: Identifier of the AdminCap allowed to administer the room
        currency: Unit symbol deposits and rewards are paid in
        yield_source: YIELD_FROM_PRINCIPAL or YIELD_FROM_ISSUER

    Raises:
        ValueError: On a non-positive numeric term, a negative start time,
                    an unknown strategy or an unknown yield source.
    """
    if not symbol or not symbol.strip():
        raise ValueError("room symbol cannot be empty")
    _require_positive("total_periods", total_periods)
    _require_positive("deposit_amount", deposit_amount)
    _require_positive("period_length_ms", period_length_ms)
    if isinstance(start_time_ms, bool) or not isinstance(start_time_ms, int) or start_time_ms < 0:
        raise ValueError(f"start_time_ms must be a non-negative integer, got {start_time_ms!r}")
    if not isinstance(strategy, Strategy):
        raise ValueError(f"strategy must be a Strategy, got {strategy!r}")
    if yield_source not in YIELD_SOURCES:
        raise ValueError(f"yield_source must be one of {YIELD_SOURCES}, got {yield_source!r}")

    vault = create_vault(symbol, currency)
    return Unit(
        symbol=symbol,
        name=f"Savings Room {symbol}: {total_periods} x {deposit_amount} {currency}",
        unit_type=UNIT_TYPE_SAVINGS_ROOM,
        min_balance=0,
        max_balance=0,
        _frozen_state=_freeze_state({
            'total_periods': total_periods,
            'deposit_amount': deposit_amount,
            'strategy_id': strategy.value,
            'status': RoomStatus.OPEN.value,
            'start_time_ms': start_time_ms,
            'period_length_ms': period_length_ms,
            'total_weight': 0,
            'currency': currency,
            'admin_cap_id': admin_cap_id,
            'principal_wallet': vault.principal_wallet,
            'reward_wallet': vault.reward_wallet,
            'yield_source': yield_source,
            'total_funded': 0,
            'total_skimmed': 0,
            'claimed_weight': 0,
            'final_reward_pool': None,
        }),
    )


def compute_create_room(view: LedgerView, room_unit: Unit) -> PendingTransaction:
    """
    Build the transaction registering a new room unit.

    The vault wallets are registered by the caller once this has been applied.

    Raises:
        ValueError: If a unit with the same symbol already exists.
    """
    if view.has_unit(room_unit.symbol):
        raise ValueError(f"Room {room_unit.symbol} already exists")
    origin = TransactionOrigin(
        OriginType.SYSTEM, "room_factory", room_unit.symbol, "ROOM_CREATED"
    )
    return build_transaction(view, [], origin=origin, units_to_create=(room_unit,))


def load_room(view: LedgerView, room_symbol: str) -> Room:
    """
    Read a room from the ledger.

    Raises:
        UnitNotRegistered: If the symbol is missing or not a SAVINGS_ROOM.
    """
    unit = view.get_unit(room_symbol)
    if unit.unit_type != UNIT_TYPE_SAVINGS_ROOM:
        raise UnitNotRegistered(f"{room_symbol} is not a savings room")
    return Room.from_state(room_symbol, view.get_unit_state(room_symbol))


def current_period(room: Room, now_ms: int) -> int:
    """
    Period index containing now_ms.

    Raises:
        NotYetStarted: If now_ms precedes the room's start time.
    """
    if now_ms < room.start_time_ms:
        raise NotYetStarted(
            f"Room {room.symbol} starts at {room.start_time_ms}, now is {now_ms}"
        )
    return (now_ms - room.start_time_ms) // room.period_length_ms


def compute_start(view: LedgerView, cap: Any, room_symbol: str) -> PendingTransaction:
    """
    OPEN -> ACTIVE.

    Raises:
        Unauthorized: If cap is not this deployment's AdminCap.
        InvalidState: If the room is not OPEN.
    """
    room = load_room(view, room_symbol)
    require_admin(cap, room.admin_cap_id)
    if room.status != RoomStatus.OPEN:
        raise InvalidState(f"Cannot start room {room_symbol} in status {room.status.value}")

    state = view.get_unit_state(room_symbol)
    new_state = {**state, 'status': RoomStatus.ACTIVE.value}
    origin = TransactionOrigin(OriginType.ADMIN, "admin", room_symbol, "ROOM_STARTED")
    return build_transaction(
        view, [], [UnitStateChange(room_symbol, state, new_state)], origin=origin
    )


def compute_fund_reward(
    view: LedgerView,
    cap: Any,
    room_symbol: str,
    payer: str,
    amount: int,
) -> PendingTransaction:
    """
    Admin top-up of the reward pool from payer's wallet. No upper bound.

    Raises:
        Unauthorized: If cap is not this deployment's AdminCap, or payer is the
                      system wallet or a vault wallet.
        InvalidState: If the room is FINISHED (the settlement snapshot is taken).
        ValueError: If amount is not a positive integer.
    """
    room = load_room(view, room_symbol)
    require_admin(cap, room.admin_cap_id)
    require_participant_wallet(payer)
    _require_positive("amount", amount)
    if room.status == RoomStatus.FINISHED:
        raise InvalidState(f"Cannot fund room {room_symbol} after finalize")

    moves = credit(room.vault, REWARD, payer, amount, f"fund_reward_{room_symbol}")
    state = view.get_unit_state(room_symbol)
    new_state = {**state, 'total_funded': state['total_funded'] + amount}
    origin = TransactionOrigin(OriginType.ADMIN, payer, room_symbol, "REWARD_FUNDED")
    return build_transaction(
        view, moves, [UnitStateChange(room_symbol, state, new_state)], origin=origin
    )


def compute_finalize(view: LedgerView, cap: Any, room_symbol: str) -> PendingTransaction:
    """
    ACTIVE -> FINISHED, freezing total_weight.

    Runs one final yield skim, then records final_reward_pool: the reward
    balance every claim is split from.

    Raises:
        Unauthorized: If cap is not this deployment's AdminCap.
        InvalidState: If the room is not ACTIVE.
        ZeroWeight: If no deposit was ever accepted.
    """
    room = load_room(view, room_symbol)
    require_admin(cap, room.admin_cap_id)
    if room.status != RoomStatus.ACTIVE:
        raise InvalidState(f"Cannot finalize room {room_symbol} in status {room.status.value}")
    if room.total_weight <= 0:
        raise ZeroWeight(f"Room {room_symbol} has no deposits to settle")

    vault = room.vault
    moves = compute_yield_skim(view, vault, room.strategy, room.yield_source)
    skimmed = skimmed_amount(moves)

    state = view.get_unit_state(room_symbol)
    new_state = {
        **state,
        'status': RoomStatus.FINISHED.value,
        'total_skimmed': state['total_skimmed'] + skimmed,
        'final_reward_pool': vault.reward(view) + skimmed,
    }
    origin = TransactionOrigin(OriginType.ADMIN, "admin", room_symbol, "ROOM_FINALIZED")
    return build_transaction(
        view, moves, [UnitStateChange(room_symbol, state, new_state)], origin=origin
    )
