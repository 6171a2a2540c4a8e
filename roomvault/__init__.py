"""
roomvault - Pooled Savings Rooms on a Double-Entry Ledger

Participants deposit a fixed amount once per period into a shared room. At
settlement every participant gets their principal back plus a pro-rata share
of the reward pool, weighted by the number of deposits they made.

Usage:
    from roomvault import SavingsEngine, Strategy

    engine, cap = SavingsEngine.deploy(verbose=False)
    engine.mint("alice", 1_000, now_ms=0)
    engine.mint("bob", 1_000, now_ms=0)

    room, vault = engine.create_room(
        total_periods=3, deposit_amount=100, strategy=Strategy.NONE,
        start_time_ms=0, period_length_ms=1_000,
    )
    engine.start_room(cap, room.symbol)
    alice = engine.join_room(room.symbol, "alice", now_ms=0, payment=100)
    bob = engine.join_room(room.symbol, "bob", now_ms=0, payment=100)
    engine.deposit(alice.symbol, "alice", now_ms=1_000, payment=100)

    engine.fund_reward_pool(cap, room.symbol, "alice", 30)
    engine.finalize_room(cap, room.symbol)
    principal, reward = engine.claim(alice.symbol, "alice")   # (200, 20)
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    AdminCap,
    issue_admin_cap,
    require_admin,
    cash,
    SYSTEM_WALLET,
    DEFAULT_CURRENCY,
    UNIT_TYPE_CASH,
    UNIT_TYPE_SAVINGS_ROOM,
    UNIT_TYPE_ROOM_POSITION,
    UNIT_TYPE_FAUCET,
    # Exceptions
    LedgerError,
    InsufficientBalance,
    BalanceConstraintViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    Unauthorized,
    InvalidState,
    RoomNotFinished,
    NotYetStarted,
    PeriodInvalid,
    JoinClosed,
    AmountInvalid,
    AlreadyDeposited,
    AlreadyJoined,
    AlreadyClaimed,
    ZeroWeight,
    NotPositionOwner,
    AmountTooLarge,
    CooldownActive,
)

# Ledger
from .ledger import Ledger

# Rooms, vaults, positions, settlement, faucet
from .units import (
    Vault,
    PRINCIPAL,
    REWARD,
    is_vault_wallet,
    Strategy,
    STRATEGY_RATE_BPS,
    YIELD_FROM_PRINCIPAL,
    YIELD_FROM_ISSUER,
    compute_yield_amount,
    compute_reward_share,
    Room,
    RoomStatus,
    create_room_unit,
    load_room,
    current_period,
    PlayerPosition,
    position_symbol,
    load_position,
    ClaimQuote,
    principal_shortfall,
    create_faucet_unit,
)

# Engine
from .engine import SavingsEngine

__all__ = [
    # Core
    'LedgerView',
    'Move',
    'Transaction',
    'PendingTransaction',
    'TransactionOrigin',
    'OriginType',
    'build_transaction',
    'Unit',
    'UnitStateChange',
    'ExecuteResult',
    'AdminCap',
    'issue_admin_cap',
    'require_admin',
    'cash',
    'SYSTEM_WALLET',
    'DEFAULT_CURRENCY',
    'UNIT_TYPE_CASH',
    'UNIT_TYPE_SAVINGS_ROOM',
    'UNIT_TYPE_ROOM_POSITION',
    'UNIT_TYPE_FAUCET',
    # Exceptions
    'LedgerError',
    'InsufficientBalance',
    'BalanceConstraintViolation',
    'UnitNotRegistered',
    'WalletNotRegistered',
    'Unauthorized',
    'InvalidState',
    'RoomNotFinished',
    'NotYetStarted',
    'PeriodInvalid',
    'JoinClosed',
    'AmountInvalid',
    'AlreadyDeposited',
    'AlreadyJoined',
    'AlreadyClaimed',
    'ZeroWeight',
    'NotPositionOwner',
    'AmountTooLarge',
    'CooldownActive',
    # Ledger
    'Ledger',
    # Units
    'Vault',
    'PRINCIPAL',
    'REWARD',
    'is_vault_wallet',
    'Strategy',
    'STRATEGY_RATE_BPS',
    'YIELD_FROM_PRINCIPAL',
    'YIELD_FROM_ISSUER',
    'compute_yield_amount',
    'compute_reward_share',
    'Room',
    'RoomStatus',
    'create_room_unit',
    'load_room',
    'current_period',
    'PlayerPosition',
    'position_symbol',
    'load_position',
    'ClaimQuote',
    'principal_shortfall',
    'create_faucet_unit',
    # Engine
    'SavingsEngine',
]
