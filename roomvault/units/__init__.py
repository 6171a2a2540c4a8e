"""
Units module - Savings room building blocks.

This module provides the pure functions behind each savings-room operation:
- Rooms (lifecycle, period clock, admin operations)
- Vaults (principal and reward pools)
- Positions (join and per-period deposits)
- Reward arithmetic and settlement
- The test-token faucet

All unit factories and related functions are re-exported here for convenience.
"""

# Vaults
from .vault import (
    Vault,
    PRINCIPAL,
    REWARD,
    create_vault,
    credit,
    debit,
    is_vault_wallet,
    require_participant_wallet,
)

# Yield and reward arithmetic
from .reward import (
    Strategy,
    STRATEGY_RATE_BPS,
    YIELD_FROM_PRINCIPAL,
    YIELD_FROM_ISSUER,
    compute_yield_amount,
    compute_yield_skim,
    compute_reward_share,
)

# Rooms
from .room import (
    Room,
    RoomStatus,
    create_room_unit,
    compute_create_room,
    load_room,
    current_period,
    compute_start,
    compute_fund_reward,
    compute_finalize,
)

# Positions
from .position import (
    PlayerPosition,
    position_symbol,
    create_position_unit,
    load_position,
    compute_join,
    compute_deposit,
)

# Settlement
from .settlement import (
    ClaimQuote,
    quote_claim,
    compute_claim,
    principal_shortfall,
)

# Faucet
from .faucet import (
    DEFAULT_COOLDOWN_MS,
    DEFAULT_MAX_AMOUNT,
    create_faucet_unit,
    can_mint,
    time_until_next_mint,
    compute_mint,
)

__all__ = [
    # Vaults
    'Vault',
    'PRINCIPAL',
    'REWARD',
    'create_vault',
    'credit',
    'debit',
    'is_vault_wallet',
    'require_participant_wallet',
    # Yield and reward arithmetic
    'Strategy',
    'STRATEGY_RATE_BPS',
    'YIELD_FROM_PRINCIPAL',
    'YIELD_FROM_ISSUER',
    'compute_yield_amount',
    'compute_yield_skim',
    'compute_reward_share',
    # Rooms
    'Room',
    'RoomStatus',
    'create_room_unit',
    'compute_create_room',
    'load_room',
    'current_period',
    'compute_start',
    'compute_fund_reward',
    'compute_finalize',
    # Positions
    'PlayerPosition',
    'position_symbol',
    'create_position_unit',
    'load_position',
    'compute_join',
    'compute_deposit',
    # Settlement
    'ClaimQuote',
    'quote_claim',
    'compute_claim',
    'principal_shortfall',
    # Faucet
    'DEFAULT_COOLDOWN_MS',
    'DEFAULT_MAX_AMOUNT',
    'create_faucet_unit',
    'can_mint',
    'time_until_next_mint',
    'compute_mint',
]
