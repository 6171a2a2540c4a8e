"""
reward.py - Yield Skim and Pro-Rata Share Arithmetic

Strategy-dependent yield is an internal simulation, not a call into any real
yield protocol. Each deposit action (join included) and the final settlement
skim a fixed number of basis points of the principal pool into the reward
pool:

    yield_amount = principal * rate_bps // 10_000

The skim is computed on the principal balance BEFORE the current action's
deposit is added, so repeated skims compound on the growing principal.

Where the simulated yield comes from is a per-room choice:

    YIELD_FROM_PRINCIPAL - debited from the principal pool. Outstanding
                           principal promises can then exceed the principal
                           balance (see settlement.principal_shortfall).
    YIELD_FROM_ISSUER    - issued from the system wallet. Principal stays
                           fully covered.

Pro-rata reward shares use floor division; the remainder stays in the vault
as rounding dust (strictly less than the number of positions).
"""

from __future__ import annotations
from enum import Enum
from typing import Dict, List

from ..core import LedgerView, Move, SYSTEM_WALLET, BPS_DENOMINATOR
from .vault import Vault, PRINCIPAL, REWARD, credit, debit


class Strategy(Enum):
    """Simulated yield strategy chosen at room creation."""
    NONE = 0
    CONSERVATIVE = 1
    BALANCED = 2
    AGGRESSIVE = 3


STRATEGY_RATE_BPS: Dict[Strategy, int] = {
    Strategy.NONE: 0,
    Strategy.CONSERVATIVE: 40,
    Strategy.BALANCED: 80,
    Strategy.AGGRESSIVE: 150,
}

YIELD_FROM_PRINCIPAL = "principal"
YIELD_FROM_ISSUER = "issuer"
YIELD_SOURCES = (YIELD_FROM_PRINCIPAL, YIELD_FROM_ISSUER)


def compute_yield_amount(principal: int, strategy: Strategy) -> int:
    """Skim for one deposit action: floor(principal * rate_bps / 10_000)."""
    if principal < 0:
        raise ValueError(f"principal must be non-negative, got {principal}")
    return principal * STRATEGY_RATE_BPS[strategy] // BPS_DENOMINATOR


def compute_yield_skim(
    view: LedgerView,
    vault: Vault,
    strategy: Strategy,
    yield_source: str = YIELD_FROM_PRINCIPAL,
) -> List[Move]:
    """
    Build the moves for one yield skim on the vault's current principal.

    Must be called before the action's own deposit move is queued.

    Returns:
        Zero or one move into the reward pool.
    """
    amount = compute_yield_amount(vault.principal(view), strategy)
    contract_id = f"yield_skim_{vault.room}"
    if yield_source == YIELD_FROM_PRINCIPAL:
        return debit(view, vault, PRINCIPAL, vault.reward_wallet, amount, contract_id)
    if yield_source == YIELD_FROM_ISSUER:
        return credit(vault, REWARD, SYSTEM_WALLET, amount, contract_id)
    raise ValueError(f"Unknown yield source: {yield_source}")


def skimmed_amount(moves: List[Move]) -> int:
    """Total quantity carried by the skim moves."""
    return sum(m.quantity for m in moves)


def compute_reward_share(deposited_count: int, reward_pool: int, total_weight: int) -> int:
    """
    Pro-rata reward for a position: floor(count * pool / total_weight).

    Raises:
        ValueError: If total_weight is not positive or count exceeds it.
    """
    if total_weight <= 0:
        raise ValueError(f"total_weight must be positive, got {total_weight}")
    if deposited_count < 0 or deposited_count > total_weight:
        raise ValueError(
            f"deposited_count must be within [0, {total_weight}], got {deposited_count}"
        )
    return deposited_count * reward_pool // total_weight
