"""
ledger.py - Stateful Ledger for Savings Rooms

The Ledger class is the central state manager. It is the only module that
mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (all moves and state changes, or none)
    - Maintains wallet balances (participants, vault pools) and unit definitions
    - Tracks logical time in milliseconds
    - Always validates and always logs
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from typing import Dict, List, Set, Optional, Tuple, Any
import copy

from .core import (
    # Types
    Transaction, Unit,
    PendingTransaction,
    ExecuteResult,
    Positions, UnitState,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    LedgerError, InsufficientBalance, BalanceConstraintViolation,
    UnitNotRegistered, WalletNotRegistered,
    # Helper functions
    _freeze_state,
)


class Ledger:
    """
    Double-entry ledger with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    functions that access only read-only methods.

    Design Principles:
        - Always validates: every transaction is checked against registration,
          balance constraints, timestamps and the current unit state. A
          transaction whose recorded old_state no longer matches is rejected.
        - Always logs: every applied transaction is appended to the audit trail.

    Thread Safety:
        Not thread-safe. SavingsEngine serialises every mutation under its own lock.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(cash("COIN"))
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")

        tx = build_transaction(ledger, [
            Move(100, "COIN", "alice", "bob", "payment_001")
        ])
        result = ledger.execute(tx)
    """

    def __init__(
        self,
        name: str,
        initial_time: int = 0,
        verbose: bool = True,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting logical time in milliseconds (default: 0)
            verbose: Print every applied or rejected transaction (default: True)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, int]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self._current_time: int = initial_time
        self.verbose = verbose
        self._next_sequence: int = 0
        # Reason for the most recent REJECTED result, as the error it maps to
        self.last_rejection: Optional[LedgerError] = None
        # Inverted index mapping unit -> {wallet -> quantity}
        self._positions_by_unit: Dict[str, Dict[str, int]] = defaultdict(dict)

        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> int:
        """Current logical time of the ledger in milliseconds."""
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, 0)

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """
        Get a deep copy of a unit's internal state.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.units[unit_symbol].state

    def get_positions(self, unit_symbol: str) -> Positions:
        """Get all non-zero positions for a specific unit across all wallets."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def has_unit(self, symbol: str) -> bool:
        """Check if a unit is registered."""
        return symbol in self.units

    def total_supply(self, unit_symbol: str) -> int:
        """
        Total supply of a unit across all wallets, system wallet included.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(self.balances[w].get(unit_symbol, 0) for w in sorted(self.registered_wallets))

    def verify_double_entry(
        self,
        expected_supplies: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        """
        Verify that conservation laws hold for all units.

        Every move debits one wallet and credits another, so the sum of all
        balances of a unit (system wallet included) is always zero. With
        expected_supplies, also checks the listed units' totals exactly.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, int] - Current total supply for each unit
            - 'discrepancies': List[Dict] - unit, expected, actual, difference

        Example:
            result = ledger.verify_double_entry()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        supplies = {}
        discrepancies = []
        expected_supplies = expected_supplies or {}

        for unit_symbol in sorted(self.units):
            current_supply = self.total_supply(unit_symbol)
            supplies[unit_symbol] = current_supply
            expected = expected_supplies.get(unit_symbol, 0)
            if current_supply != expected:
                discrepancies.append({
                    'unit': unit_symbol,
                    'expected': expected,
                    'actual': current_supply,
                    'difference': current_supply - expected,
                })

        for unit_symbol, expected in expected_supplies.items():
            if unit_symbol not in supplies:
                discrepancies.append({
                    'unit': unit_symbol,
                    'expected': expected,
                    'actual': 0,
                    'difference': -expected,
                    'error': 'unit not registered',
                })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: int) -> None:
        """
        Advance the ledger's logical clock.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet in the ledger.

        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{ledger_name}:{sequence:012d}:{time_ms}"""
        return f"exec:{self.name}:{sequence:012d}:{self._current_time}"

    def execute(self, pending: PendingTransaction, at_time: Optional[int] = None) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves and state changes succeed together or none are applied.
        Execution is idempotent: a pending transaction with the same intent_id
        will not be applied twice.

        With at_time later than the current time, the clock advances to
        at_time as part of the same all-or-nothing step: on ALREADY_APPLIED or
        REJECTED it stays where it was.

        On REJECTED, last_rejection holds the error describing why.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if transaction was already executed
            ExecuteResult.REJECTED if validation failed
        """
        self.last_rejection = None

        execution_time = self._current_time
        if at_time is not None and at_time > execution_time:
            execution_time = at_time

        if pending.is_empty():
            self._current_time = execution_time
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        # Units are registered for validation and removed again on rejection
        newly_registered_units: List[str] = []
        for unit in pending.units_to_create:
            if unit.symbol in self.units:
                self.last_rejection = LedgerError(f"unit already registered: {unit.symbol}")
                return self._reject(newly_registered_units)
            self.units[unit.symbol] = unit
            newly_registered_units.append(unit.symbol)

        self.last_rejection = self._validate_pending(pending)
        if self.last_rejection is not None:
            return self._reject(newly_registered_units)

        self._current_time = execution_time
        sequence = self._next_sequence
        self._next_sequence += 1

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
        )

        self._execute_moves(tx.moves)

        for sc in tx.state_changes:
            old_unit = self.units[sc.unit]
            new_state = sc.new_state if isinstance(sc.new_state, dict) else {}
            self.units[sc.unit] = replace(old_unit, _frozen_state=_freeze_state(new_state))

        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED

    def _reject(self, newly_registered_units: List[str]) -> ExecuteResult:
        for sym in newly_registered_units:
            del self.units[sym]
        if self.verbose:
            print(f"✗ REJECTED: {self.last_rejection}")
        return ExecuteResult.REJECTED

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print the boxed transaction record with a result line appended."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _validate_pending(self, pending: PendingTransaction) -> Optional[LedgerError]:
        """
        Validate a pending transaction against all constraints.

        Checks performed:
        1. Timestamp (transaction must not be from the future)
        2. Unit and wallet registration
        3. State freshness (old_state must equal the unit's current state)
        4. Balance constraints (min/max balance limits)

        Returns:
            None if valid, otherwise the error describing the failure.
        """
        if pending.timestamp > self._current_time:
            return LedgerError(f"future timestamp {pending.timestamp} > {self._current_time}")

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return UnitNotRegistered(f"unit not registered: {move.unit_symbol}")
            if not self.is_registered(move.source):
                return WalletNotRegistered(f"wallet not registered: {move.source}")
            if not self.is_registered(move.dest):
                return WalletNotRegistered(f"wallet not registered: {move.dest}")

        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return UnitNotRegistered(f"unit not registered: {sc.unit}")
            if sc.old_state is None:
                continue
            current_state = self.units[sc.unit].state
            old_state = sc.old_state if isinstance(sc.old_state, dict) else {}
            for key in set(old_state.keys()) | set(current_state.keys()):
                if old_state.get(key) != current_state.get(key):
                    return LedgerError(
                        f"stale state for {sc.unit}.{key}: "
                        f"expected {old_state.get(key)!r}, found {current_state.get(key)!r}"
                    )

        net: Dict[Tuple[str, str], int] = defaultdict(int)
        for move in pending.moves:
            net[(move.source, move.unit_symbol)] -= move.quantity
            net[(move.dest, move.unit_symbol)] += move.quantity

        # SYSTEM_WALLET is exempt from balance validation (issuance)
        for (wallet, unit_sym), delta in sorted(net.items()):
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[unit_sym]
            current = self.balances[wallet].get(unit_sym, 0)
            proposed = current + delta
            if proposed < unit.min_balance:
                return InsufficientBalance(
                    f"{wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
                )
            if unit.max_balance is not None and proposed > unit.max_balance:
                return BalanceConstraintViolation(
                    f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"
                )

        return None

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """Keep the unit -> {wallet -> quantity} index in sync; zero balances are dropped."""
        if quantity != 0:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """Apply all moves to wallet balances and update the position index."""
        for move in moves:
            new_src_balance = self.balances[move.source][move.unit_symbol] - move.quantity
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)
            new_dst_balance = self.balances[move.dest][move.unit_symbol] + move.quantity
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def state_snapshot(self) -> Dict[str, Any]:
        """Return a deep copy of all balances and unit states, for atomicity checks."""
        return {
            'balances': {w: dict(b) for w, b in self.balances.items()},
            'states': {s: copy.deepcopy(u.state) for s, u in self.units.items()},
        }
