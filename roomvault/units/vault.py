"""
vault.py - Two-Pool Vault Accounting

A Vault is the fund-holding companion of a room. It is not a unit of its own:
it is a pair of ledger wallets holding the room currency.

    <room>:principal   - participants' deposits, returned in full at claim
    <room>:reward      - admin top-ups plus simulated yield, split pro-rata

Both pools are unsigned (the currency unit has min_balance 0). credit() is an
unconditional add; debit() refuses to build a move larger than the pool's
current balance, and the ledger re-checks the same constraint at execution,
so a partial debit can never be committed.

The <room>:principal and <room>:reward names are reserved: no participant may
register, mint into, join as or pay from a vault wallet.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List

from ..core import LedgerView, Move, InsufficientBalance, Unauthorized, SYSTEM_WALLET


PRINCIPAL = "principal"
REWARD = "reward"
POOLS = (PRINCIPAL, REWARD)


@dataclass(frozen=True, slots=True)
class Vault:
    """
    Handle on a room's two segregated pools.

    Attributes:
        room: Symbol of the owning room
        principal_wallet: Wallet ID of the principal pool
        reward_wallet: Wallet ID of the reward pool
        currency: Unit symbol both pools hold
    """
    room: str
    principal_wallet: str
    reward_wallet: str
    currency: str

    def wallet(self, pool: str) -> str:
        """Return the wallet ID backing a pool name."""
        if pool == PRINCIPAL:
            return self.principal_wallet
        if pool == REWARD:
            return self.reward_wallet
        raise ValueError(f"Unknown vault pool: {pool}")

    def principal(self, view: LedgerView) -> int:
        return view.get_balance(self.principal_wallet, self.currency)

    def reward(self, view: LedgerView) -> int:
        return view.get_balance(self.reward_wallet, self.currency)

    def balances(self, view: LedgerView) -> Dict[str, int]:
        return {PRINCIPAL: self.principal(view), REWARD: self.reward(view)}


def create_vault(room_symbol: str, currency: str) -> Vault:
    """Derive the vault wallet names for a room."""
    return Vault(
        room=room_symbol,
        principal_wallet=f"{room_symbol}:{PRINCIPAL}",
        reward_wallet=f"{room_symbol}:{REWARD}",
        currency=currency,
    )


def is_vault_wallet(wallet_id: str) -> bool:
    """True for any wallet ID of the form <room>:principal or <room>:reward."""
    room, sep, pool = wallet_id.rpartition(":")
    return bool(sep) and bool(room) and pool in POOLS


def require_participant_wallet(wallet_id: str) -> None:
    """
    Refuse wallet IDs a participant may never act as.

    Vault wallets are only reachable through room operations, and the system
    wallet is exempt from balance checks, so neither may join, mint or pay.

    Raises:
        Unauthorized: If wallet_id is the system wallet or a vault wallet.
    """
    if wallet_id == SYSTEM_WALLET or is_vault_wallet(wallet_id):
        raise Unauthorized(f"{wallet_id} is reserved and cannot act as a participant")


def credit(
    vault: Vault,
    pool: str,
    source: str,
    amount: int,
    contract_id: str,
) -> List[Move]:
    """
    Build the move adding amount to a pool from source.

    Returns an empty list for a zero amount. The source wallet's own balance
    is enforced by the ledger when the transaction executes.
    """
    if amount < 0:
        raise ValueError(f"credit amount must be non-negative, got {amount}")
    if amount == 0:
        return []
    return [Move(amount, vault.currency, source, vault.wallet(pool), contract_id)]


def debit(
    view: LedgerView,
    vault: Vault,
    pool: str,
    dest: str,
    amount: int,
    contract_id: str,
) -> List[Move]:
    """
    Build the move taking amount out of a pool into dest.

    Args:
        view: Read-only ledger access
        vault: Vault to debit
        pool: PRINCIPAL or REWARD
        dest: Receiving wallet
        amount: Amount to debit (0 yields no move)
        contract_id: Identifier recorded on the move

    Raises:
        InsufficientBalance: If amount exceeds the pool's available balance.
    """
    if amount < 0:
        raise ValueError(f"debit amount must be non-negative, got {amount}")
    available = view.get_balance(vault.wallet(pool), vault.currency)
    if amount > available:
        raise InsufficientBalance(
            f"{vault.room} {pool} pool: debit {amount} exceeds balance {available}"
        )
    if amount == 0:
        return []
    return [Move(amount, vault.currency, vault.wallet(pool), dest, contract_id)]
