"""
Core types and pure functions for the savings-room ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError and the savings-room error taxonomy
4. Credentials: AdminCap for privileged room operations
5. Unit factories: cash() for the room currency

All quantities are integers in the currency's smallest unit and all times are
integer milliseconds. No floating point is used anywhere in settlement math.

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import copy
import hashlib
import secrets
from typing import (
    Dict, List, Set, Optional, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance (faucet mints, position tokens, simulated yield).
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Unit type constants (strings, not enum).
UNIT_TYPE_CASH = "CASH"
UNIT_TYPE_SAVINGS_ROOM = "SAVINGS_ROOM"
UNIT_TYPE_ROOM_POSITION = "ROOM_POSITION"
UNIT_TYPE_FAUCET = "FAUCET"

# Default currency every room settles in.
DEFAULT_CURRENCY = "COIN"

# Basis points denominator (1 bp = 0.01%).
BPS_DENOMINATOR = 10_000


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, int]

# Internal state for a unit: room terms, position counters, faucet cooldowns.
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Room, position, vault and faucet functions accept a LedgerView to declare
    that they only read. The Ledger class implements this protocol but also
    provides mutation methods. For testing, FakeView provides a truly
    immutable implementation.
    """

    @property
    def current_time(self) -> int:
        """Return the current logical time of the ledger in milliseconds."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Return the balance of a specific unit in a wallet.

        Returns 0 if the wallet holds none of the unit.
        """
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...

    def has_unit(self, symbol: str) -> bool:
        """Return True if a unit with this symbol is registered."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was successfully validated and applied to the ledger.
    ALREADY_APPLIED: Transaction ID was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation due to insufficient funds, balance
              constraints or stale unit state.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Participant-initiated (join, deposit, claim)
    ADMIN = "admin"                       # AdminCap-gated (start, finalize, fund)
    SYSTEM = "system"                     # Room creation, faucet issuance


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when a debit would take a wallet or pool below zero."""
    pass


class BalanceConstraintViolation(LedgerError):
    """Raised when a move would cause a wallet balance to violate the unit's min/max constraints."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


class Unauthorized(LedgerError):
    """Raised when a privileged operation is called without the deployment's AdminCap."""
    pass


class InvalidState(LedgerError):
    """Raised when an operation is not permitted in the room's current status."""
    pass


class RoomNotFinished(InvalidState):
    """Raised when a claim is attempted before the room is finalized."""
    pass


class NotYetStarted(LedgerError):
    """Raised when the supplied time precedes the room's start time."""
    pass


class PeriodInvalid(LedgerError):
    """Raised when the current period is outside the window allowed for the operation."""
    pass


class JoinClosed(PeriodInvalid):
    """Raised when a join is attempted after period 0."""
    pass


class AmountInvalid(LedgerError):
    """Raised when a payment does not exactly equal the room's deposit amount."""
    pass


class AlreadyDeposited(LedgerError):
    """Raised when a deposit was already accepted for the current or a later period."""
    pass


class AlreadyJoined(LedgerError):
    """Raised when a participant joins a room they already hold a position in."""
    pass


class AlreadyClaimed(LedgerError):
    """Raised when a claim is attempted on a position that has already been settled."""
    pass


class ZeroWeight(LedgerError):
    """Raised when finalize is attempted before any deposit was recorded."""
    pass


class NotPositionOwner(LedgerError):
    """Raised when a participant acts on a position they do not own."""
    pass


class AmountTooLarge(LedgerError):
    """Raised when a faucet request exceeds the per-request cap."""
    pass


class CooldownActive(LedgerError):
    """Raised when an address requests a mint before its cooldown has expired."""

    def __init__(self, address: str, remaining_ms: int):
        self.address = address
        self.remaining_ms = remaining_ms
        super().__init__(f"Faucet cooldown active for {address}: {remaining_ms}ms remaining")


# ============================================================================
# ADMIN CAPABILITY
# ============================================================================

@dataclass(frozen=True, slots=True)
class AdminCap:
    """
    Unforgeable administrator credential.

    Exactly one is issued per deployment (see SavingsEngine.deploy). Privileged
    operations receive it as an explicit argument and compare its cap_id with
    the one recorded in the room state.
    """
    cap_id: str

    def __repr__(self) -> str:
        return f"AdminCap({self.cap_id[:8]}...)"


def issue_admin_cap() -> AdminCap:
    """Create a fresh AdminCap with a random 256-bit identifier."""
    return AdminCap(cap_id=secrets.token_hex(32))


def require_admin(cap: Any, expected_cap_id: str) -> None:
    """
    Verify that cap is an AdminCap matching expected_cap_id.

    Raises:
        Unauthorized: If cap is not an AdminCap or belongs to another deployment.
    """
    if not isinstance(cap, AdminCap):
        raise Unauthorized(f"Expected AdminCap, got {type(cap).__name__}")
    if not secrets.compare_digest(cap.cap_id, expected_cap_id):
        raise Unauthorized("AdminCap does not belong to this deployment")


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source (USER_ACTION, ADMIN, SYSTEM)
        source_id: Identifier of the caller (participant wallet, "admin", "faucet")
        unit_symbol: Symbol of the room or faucet the operation targets
        event_type: Operation name (e.g., "JOIN", "DEPOSIT", "CLAIM")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Record of a unit state change with complete before/after snapshots.

    The ledger compares old_state with the unit's current state at execution
    time and rejects the transaction if they differ.

    Attributes:
        unit: Symbol of the unit whose state changed
        old_state: Complete state before the change (dict or None)
        new_state: Complete state after the change (dict)
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old_value, new_value)} for fields that differ."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (positive integer, smallest currency unit).
        unit_symbol: The symbol of the unit being transferred (e.g., "COIN").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: int
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Independent of dict insertion order and set iteration order.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, Enum):
        return f"E:{value.value}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, (set, frozenset)):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = ()
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Based solely on the semantic content of the transaction, never on
    timestamps. Used for idempotency checking.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (m.quantity, m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        content_parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for unit in sorted(units_to_create, key=lambda u: u.symbol):
        content_parts.append(f"unit_create:{unit.symbol}|{unit.unit_type}")

    for m in sorted_moves:
        content_parts.append(f"move:{m.quantity}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(state_changes, key=lambda s: s.unit):
        old_canonical = _canonicalize(sc.old_state)
        new_canonical = _canonicalize(sc.new_state)
        content_parts.append(f"state_change:{sc.unit}|{old_canonical}|{new_canonical}")

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Created by the room, position, vault and faucet functions and submitted to
    the ledger for execution.

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: Ledger time (ms) when this pending transaction was built
        units_to_create: Tuple of Unit objects to register before executing moves
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: int
    units_to_create: Tuple['Unit', ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.units_to_create
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves, no state deltas, and no units to create."""
        return not self.moves and not self.state_changes and not self.units_to_create

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and state deltas.

    State snapshots are deep-copied so later mutation of the caller's dicts
    cannot leak into the transaction.

    Example:
        def compute_start(view, room_symbol):
            old_state = view.get_unit_state(room_symbol)
            new_state = {**old_state, "status": "ACTIVE"}
            changes = [UnitStateChange(room_symbol, old_state, new_state)]
            return build_transaction(view, [], changes)
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.USER_ACTION,
            source_id="anonymous",
        )

    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            UnitStateChange(
                unit=sc.unit,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        units_to_create=units_to_create or (),
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was built (ms)
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged (ms)
        sequence_number: Monotonic sequence within the ledger (for ordering)
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: int
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: int
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes and not self.units_to_create:
            raise ValueError("Transaction must have moves, state_changes, or units_to_create")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   timestamp      : ' + str(self.timestamp))}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        if self.units_to_create:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Units Created (' + str(len(self.units_to_create)) + '):')}│")
            for unit in self.units_to_create:
                lines.append(f"│{pad('   ' + unit.symbol + ' (' + unit.name + ')')}│")
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' State Changes (' + str(len(self.state_changes)) + '):')}│")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.unit + ']')}│")
                for field_name, (old_val, new_val) in sc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a mutable state dict to a tuple of (key, value) pairs sorted by key."""
    if not state:
        return ()
    return tuple(sorted(copy.deepcopy(state).items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a mutable dict."""
    return copy.deepcopy(dict(frozen_state))


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit registered in the ledger.

    Currencies carry balances; rooms and faucets carry only state; positions
    carry both (one token held by the owner plus the deposit counters).

    Attributes:
        symbol: Short identifier for the unit (e.g., "COIN", "ROOM_1").
        name: Human-readable name for the unit.
        unit_type: Category of the unit (CASH, SAVINGS_ROOM, ROOM_POSITION, FAUCET).
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any non-system wallet (None = unbounded).
        _frozen_state: Internal frozen state representation (tuple of key-value pairs).
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: int = 0
    max_balance: Optional[int] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """Get the unit's state as a new mutable dictionary."""
        return _thaw_state(self._frozen_state)


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def cash(symbol: str = DEFAULT_CURRENCY, name: str = "Savings Coin") -> Unit:
    """
    Create the fungible currency unit rooms settle in.

    Balances are unsigned: min_balance is 0, so any move that would overdraw a
    non-system wallet is rejected by the ledger.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_CASH,
        min_balance=0,
        _frozen_state=_freeze_state({'issuer': SYSTEM_WALLET}),
    )
