"""
faucet.py - Rate-Limited Test Token Issuance

The faucet issues room currency from the system wallet to any address, with a
per-request cap and a per-address cooldown:

    mint allowed  <=>  amount <= max_amount
                       and (address never minted or now_ms >= last_mint + cooldown_ms)

The faucet is a FAUCET unit holding only state; last_mint maps address to the
time of that address's most recent successful mint. Addresses never share a
cooldown. total_issued grows with every mint, so two mints never share an
intent even when the cooldown is 0.
"""

from __future__ import annotations
from typing import Dict, Optional

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    UNIT_TYPE_FAUCET, SYSTEM_WALLET, DEFAULT_CURRENCY,
    AmountTooLarge, CooldownActive, UnitNotRegistered,
    build_transaction, _freeze_state,
)
from .vault import require_participant_wallet


DEFAULT_FAUCET_SYMBOL = "FAUCET"
DEFAULT_COOLDOWN_MS = 3_600_000
DEFAULT_MAX_AMOUNT = 10_000


def create_faucet_unit(
    symbol: str = DEFAULT_FAUCET_SYMBOL,
    currency: str = DEFAULT_CURRENCY,
    cooldown_ms: int = DEFAULT_COOLDOWN_MS,
    max_amount: int = DEFAULT_MAX_AMOUNT,
) -> Unit:
    """
    Create a FAUCET unit.

    Raises:
        ValueError: If cooldown_ms is negative or max_amount is not positive.
    """
    if cooldown_ms < 0:
        raise ValueError(f"cooldown_ms must be non-negative, got {cooldown_ms}")
    if max_amount <= 0:
        raise ValueError(f"max_amount must be positive, got {max_amount}")
    return Unit(
        symbol=symbol,
        name=f"{currency} Faucet",
        unit_type=UNIT_TYPE_FAUCET,
        min_balance=0,
        max_balance=0,
        _frozen_state=_freeze_state({
            'currency': currency,
            'cooldown_ms': cooldown_ms,
            'max_amount': max_amount,
            'last_mint': {},
            'total_issued': 0,
        }),
    )


def _faucet_state(view: LedgerView, faucet_symbol: str) -> dict:
    unit = view.get_unit(faucet_symbol)
    if unit.unit_type != UNIT_TYPE_FAUCET:
        raise UnitNotRegistered(f"{faucet_symbol} is not a faucet")
    return view.get_unit_state(faucet_symbol)


def time_until_next_mint(view: LedgerView, faucet_symbol: str, address: str, now_ms: int) -> int:
    """Milliseconds until address may mint again; 0 if it may mint now."""
    state = _faucet_state(view, faucet_symbol)
    last: Optional[int] = state['last_mint'].get(address)
    if last is None:
        return 0
    return max(0, last + state['cooldown_ms'] - now_ms)


def can_mint(view: LedgerView, faucet_symbol: str, address: str, now_ms: int) -> bool:
    return time_until_next_mint(view, faucet_symbol, address, now_ms) == 0


def compute_mint(
    view: LedgerView,
    faucet_symbol: str,
    address: str,
    amount: int,
    now_ms: int,
) -> PendingTransaction:
    """
    Issue amount of the faucet currency to address.

    Raises:
        AmountTooLarge: If amount exceeds the per-request cap.
        ValueError: If amount is not positive.
        Unauthorized: If address is the system wallet or a vault wallet.
        CooldownActive: If address minted less than cooldown_ms ago.
    """
    require_participant_wallet(address)
    state = _faucet_state(view, faucet_symbol)
    if amount > state['max_amount']:
        raise AmountTooLarge(
            f"Faucet request {amount} exceeds cap {state['max_amount']}"
        )
    if amount <= 0:
        raise ValueError(f"mint amount must be positive, got {amount}")
    remaining = time_until_next_mint(view, faucet_symbol, address, now_ms)
    if remaining > 0:
        raise CooldownActive(address, remaining)

    last_mint: Dict[str, int] = dict(state['last_mint'])
    last_mint[address] = now_ms
    new_state = {**state, 'last_mint': last_mint, 'total_issued': state['total_issued'] + amount}

    moves = [Move(amount, state['currency'], SYSTEM_WALLET, address, f"faucet_{address}_{now_ms}")]
    origin = TransactionOrigin(OriginType.SYSTEM, "faucet", faucet_symbol, "MINT")
    return build_transaction(
        view, moves, [UnitStateChange(faucet_symbol, state, new_state)], origin=origin
    )
