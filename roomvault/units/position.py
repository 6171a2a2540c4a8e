"""
position.py - Per-Participant Deposit Ledger

A PlayerPosition is a ROOM_POSITION unit: one token (max balance 1) issued to
the owner at join, plus state counting the owner's accepted deposits.

    deposited_count  - accepted deposit actions (join counts as the first)
    last_period      - period of the most recent accepted deposit (0 after join)
    claimed          - set once by settlement, never reset

Weight is the count of accepted deposit actions. Each join or deposit adds 1
to both the position's deposited_count and the room's total_weight within the
same transaction, so before finalize:

    room.total_weight == sum(position.deposited_count for every position)

last_period strictly increases, which allows at most one deposit per period
and rules out catch-up deposits for skipped periods.
"""

from __future__ import annotations
from dataclasses import dataclass

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    UNIT_TYPE_ROOM_POSITION, SYSTEM_WALLET,
    InvalidState, JoinClosed, PeriodInvalid, AmountInvalid,
    AlreadyDeposited, AlreadyJoined, NotPositionOwner, UnitNotRegistered,
    build_transaction, _freeze_state,
)
from .reward import compute_yield_skim, skimmed_amount
from .room import Room, RoomStatus, load_room, current_period
from .vault import PRINCIPAL, credit, require_participant_wallet


@dataclass(frozen=True, slots=True)
class PlayerPosition:
    """Typed read of a ROOM_POSITION unit's state."""
    symbol: str
    room: str
    owner: str
    deposited_count: int
    last_period: int
    claimed: bool

    @classmethod
    def from_state(cls, symbol: str, state: dict) -> PlayerPosition:
        return cls(
            symbol=symbol,
            room=state['room'],
            owner=state['owner'],
            deposited_count=state['deposited_count'],
            last_period=state['last_period'],
            claimed=state['claimed'],
        )


def position_symbol(room_symbol: str, owner: str) -> str:
    """Deterministic position symbol: one position per owner per room."""
    return f"POS:{room_symbol}:{owner}"


def create_position_unit(room_symbol: str, owner: str) -> Unit:
    """Create the ROOM_POSITION unit for a fresh join."""
    if not owner or not owner.strip():
        raise ValueError("owner cannot be empty")
    symbol = position_symbol(room_symbol, owner)
    return Unit(
        symbol=symbol,
        name=f"Position of {owner} in {room_symbol}",
        unit_type=UNIT_TYPE_ROOM_POSITION,
        min_balance=0,
        max_balance=1,
        _frozen_state=_freeze_state({
            'room': room_symbol,
            'owner': owner,
            'deposited_count': 1,
            'last_period': 0,
            'claimed': False,
        }),
    )


def load_position(view: LedgerView, symbol: str) -> PlayerPosition:
    """
    Read a position from the ledger.

    Raises:
        UnitNotRegistered: If the symbol is missing or not a ROOM_POSITION.
    """
    unit = view.get_unit(symbol)
    if unit.unit_type != UNIT_TYPE_ROOM_POSITION:
        raise UnitNotRegistered(f"{symbol} is not a room position")
    return PlayerPosition.from_state(symbol, view.get_unit_state(symbol))


def load_owned_position(view: LedgerView, symbol: str, owner: str) -> PlayerPosition:
    """
    Read a position and check that owner holds it.

    Raises:
        NotPositionOwner: If owner is not the position's owner.
    """
    position = load_position(view, symbol)
    if position.owner != owner:
        raise NotPositionOwner(f"{owner} does not own position {symbol}")
    return position


def _require_active(room: Room) -> None:
    if room.status != RoomStatus.ACTIVE:
        raise InvalidState(
            f"Room {room.symbol} is {room.status.value}, deposits need ACTIVE"
        )


def _require_exact_payment(room: Room, payment: int) -> None:
    if payment != room.deposit_amount:
        raise AmountInvalid(
            f"Room {room.symbol} requires exactly {room.deposit_amount}, got {payment}"
        )


def _deposit_moves(view: LedgerView, room: Room, payer: str, payment: int, contract_id: str):
    """Skim on the pre-deposit principal, then the payment into principal."""
    vault = room.vault
    skim = compute_yield_skim(view, vault, room.strategy, room.yield_source)
    return skim, skim + credit(vault, PRINCIPAL, payer, payment, contract_id)


def compute_join(
    view: LedgerView,
    room_symbol: str,
    owner: str,
    now_ms: int,
    payment: int,
) -> PendingTransaction:
    """
    Join a room during period 0 with the first deposit.

    Creates the owner's position (count 1, last_period 0, unclaimed), issues
    the position token, moves payment into the principal pool and adds 1 to
    the room's total_weight.

    Raises:
        InvalidState: If the room is not ACTIVE.
        NotYetStarted: If now_ms precedes the room start.
        JoinClosed: If the current period is not 0.
        AmountInvalid: If payment differs from the deposit amount.
        Unauthorized: If owner is the system wallet or a vault wallet.
        AlreadyJoined: If owner already holds a position in this room.
    """
    require_participant_wallet(owner)
    room = load_room(view, room_symbol)
    _require_active(room)
    period = current_period(room, now_ms)
    if period != 0:
        raise JoinClosed(f"Room {room_symbol} join window closed (period {period})")
    _require_exact_payment(room, payment)

    position_unit = create_position_unit(room_symbol, owner)
    if view.has_unit(position_unit.symbol):
        raise AlreadyJoined(f"{owner} already joined room {room_symbol}")

    skim, moves = _deposit_moves(view, room, owner, payment, f"join_{room_symbol}_{owner}")
    moves.append(Move(1, position_unit.symbol, SYSTEM_WALLET, owner, f"position_{room_symbol}_{owner}"))

    state = view.get_unit_state(room_symbol)
    new_state = {
        **state,
        'total_weight': state['total_weight'] + 1,
        'total_skimmed': state['total_skimmed'] + skimmed_amount(skim),
    }
    origin = TransactionOrigin(OriginType.USER_ACTION, owner, room_symbol, "JOIN")
    return build_transaction(
        view,
        moves,
        [UnitStateChange(room_symbol, state, new_state)],
        origin=origin,
        units_to_create=(position_unit,),
    )


def compute_deposit(
    view: LedgerView,
    position_sym: str,
    owner: str,
    now_ms: int,
    payment: int,
) -> PendingTransaction:
    """
    Record one deposit for the current period.

    Raises:
        NotPositionOwner: If owner does not own the position.
        InvalidState: If the room is not ACTIVE.
        NotYetStarted: If now_ms precedes the room start.
        PeriodInvalid: If the current period is past the last period.
        AlreadyDeposited: If the position already deposited in this or a later period.
        AmountInvalid: If payment differs from the deposit amount.
    """
    position = load_owned_position(view, position_sym, owner)
    room = load_room(view, position.room)
    _require_active(room)
    period = current_period(room, now_ms)
    if period >= room.total_periods:
        raise PeriodInvalid(
            f"Room {room.symbol} has {room.total_periods} periods, now in period {period}"
        )
    if period <= position.last_period:
        raise AlreadyDeposited(
            f"{position_sym} already deposited in period {position.last_period}, now {period}"
        )
    _require_exact_payment(room, payment)

    skim, moves = _deposit_moves(
        view, room, owner, payment, f"deposit_{room.symbol}_{owner}_{period}"
    )

    room_state = view.get_unit_state(room.symbol)
    new_room_state = {
        **room_state,
        'total_weight': room_state['total_weight'] + 1,
        'total_skimmed': room_state['total_skimmed'] + skimmed_amount(skim),
    }
    pos_state = view.get_unit_state(position_sym)
    new_pos_state = {
        **pos_state,
        'deposited_count': pos_state['deposited_count'] + 1,
        'last_period': period,
    }
    origin = TransactionOrigin(OriginType.USER_ACTION, owner, room.symbol, "DEPOSIT")
    return build_transaction(
        view,
        moves,
        [
            UnitStateChange(room.symbol, room_state, new_room_state),
            UnitStateChange(position_sym, pos_state, new_pos_state),
        ],
        origin=origin,
    )
