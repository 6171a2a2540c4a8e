"""
settlement.py - Claim and Solvency Reporting

Once a room is FINISHED, each position is settled exactly once:

    principal = deposited_count * deposit_amount
    reward    = deposited_count * final_reward_pool // total_weight

final_reward_pool is the reward balance snapshotted by finalize, so every
claimer is paid from the same pool regardless of claim order. The floor
leaves at most total_weight - 1 units of rounding dust in the reward pool.

Both pool debits and the claimed flag go into one transaction: if either
pool is short the claim fails and nothing changes.
"""

from __future__ import annotations
from dataclasses import dataclass

from ..core import (
    LedgerView, PendingTransaction, UnitStateChange,
    TransactionOrigin, OriginType,
    RoomNotFinished, AlreadyClaimed,
    build_transaction,
)
from .position import PlayerPosition, load_position, load_owned_position
from .reward import compute_reward_share
from .room import Room, RoomStatus, load_room
from .vault import PRINCIPAL, REWARD, debit


@dataclass(frozen=True, slots=True)
class ClaimQuote:
    principal_amount: int
    reward_amount: int

    @property
    def total(self) -> int:
        return self.principal_amount + self.reward_amount


def _require_finished(room: Room) -> None:
    if room.status != RoomStatus.FINISHED:
        raise RoomNotFinished(
            f"Room {room.symbol} is {room.status.value}, claims need FINISHED"
        )


def _quote(room: Room, position: PlayerPosition) -> ClaimQuote:
    return ClaimQuote(
        principal_amount=position.deposited_count * room.deposit_amount,
        reward_amount=compute_reward_share(
            position.deposited_count, room.final_reward_pool, room.total_weight
        ),
    )


def quote_claim(view: LedgerView, position_sym: str) -> ClaimQuote:
    """
    Amounts a claim on this position would pay, without building it.

    Raises:
        RoomNotFinished: If the room has not been finalized.
        AlreadyClaimed: If the position has already been settled.
    """
    position = load_position(view, position_sym)
    room = load_room(view, position.room)
    _require_finished(room)
    if position.claimed:
        raise AlreadyClaimed(f"{position_sym} already claimed")
    return _quote(room, position)


def compute_claim(view: LedgerView, position_sym: str, owner: str) -> PendingTransaction:
    """
    Settle a position: return its principal and pay its reward share.

    Raises:
        NotPositionOwner: If owner does not own the position.
        RoomNotFinished: If the room has not been finalized.
        AlreadyClaimed: If the position has already been settled.
        InsufficientBalance: If either pool cannot cover its part.
    """
    position = load_owned_position(view, position_sym, owner)
    room = load_room(view, position.room)
    _require_finished(room)
    if position.claimed:
        raise AlreadyClaimed(f"{position_sym} already claimed")

    quote = _quote(room, position)
    vault = room.vault
    contract_id = f"claim_{room.symbol}_{owner}"
    moves = (
        debit(view, vault, PRINCIPAL, owner, quote.principal_amount, contract_id)
        + debit(view, vault, REWARD, owner, quote.reward_amount, contract_id)
    )

    room_state = view.get_unit_state(room.symbol)
    new_room_state = {
        **room_state,
        'claimed_weight': room_state['claimed_weight'] + position.deposited_count,
    }
    pos_state = view.get_unit_state(position_sym)
    new_pos_state = {**pos_state, 'claimed': True}
    origin = TransactionOrigin(OriginType.USER_ACTION, owner, room.symbol, "CLAIM")
    return build_transaction(
        view,
        moves,
        [
            UnitStateChange(room.symbol, room_state, new_room_state),
            UnitStateChange(position_sym, pos_state, new_pos_state),
        ],
        origin=origin,
    )


def principal_shortfall(view: LedgerView, room_symbol: str) -> int:
    """
    Outstanding principal promises not covered by the principal pool.

    Unclaimed weight times the deposit amount, minus the principal balance,
    floored at 0. Only non-zero when yield is skimmed out of principal.
    """
    room = load_room(view, room_symbol)
    outstanding = (room.total_weight - room.claimed_weight) * room.deposit_amount
    return max(0, outstanding - room.vault.principal(view))
