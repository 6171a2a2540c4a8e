"""
engine.py - Savings Engine

The stateful shell around the pure room, position, settlement and faucet
functions. One SavingsEngine owns one Ledger and one AdminCap.

Each operation is one unit of work:
1. Acquire the room's lock (the faucet has its own)
2. Build a PendingTransaction from the current ledger view
3. Execute it atomically, advancing the ledger clock to the caller's time
   only if it applies; a rejection is raised as the matching LedgerError

Domain errors raised while building (InvalidState, AmountInvalid, ...) leave
the ledger untouched. Nothing is retried.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Tuple
import threading

from .core import (
    AdminCap, PendingTransaction, ExecuteResult, LedgerError,
    DEFAULT_CURRENCY, cash, issue_admin_cap,
)
from .ledger import Ledger
from .units.faucet import (
    DEFAULT_FAUCET_SYMBOL, DEFAULT_COOLDOWN_MS, DEFAULT_MAX_AMOUNT,
    create_faucet_unit, compute_mint, can_mint, time_until_next_mint,
)
from .units.position import (
    PlayerPosition, position_symbol, load_position, compute_join, compute_deposit,
)
from .units.reward import Strategy, YIELD_FROM_PRINCIPAL
from .units.room import (
    Room, load_room, create_room_unit, compute_create_room,
    compute_start, compute_fund_reward, compute_finalize,
    current_period as room_current_period,
)
from .units.settlement import ClaimQuote, compute_claim, quote_claim, principal_shortfall
from .units.vault import Vault, create_vault, require_participant_wallet


class SavingsEngine:
    """
    Entry point for savings-room operations.

    Thread Safety:
        Operations on the same room are serialised by a per-room RLock.
        Every ledger mutation (execute, registration, clock) additionally
        holds one engine-wide lock, so builds for different rooms may
        interleave but their commits do not; the ledger's stale-state check
        rejects any build that was overtaken.

    Example:
        engine, cap = SavingsEngine.deploy(verbose=False)
        engine.register_participant("alice")
        engine.mint("alice", 1_000, now_ms=0)

        room, vault = engine.create_room(3, 100, Strategy.NONE, 0, 1_000)
        engine.start_room(cap, room.symbol)
        pos = engine.join_room(room.symbol, "alice", now_ms=0, payment=100)
    """

    def __init__(self, ledger: Ledger, admin_cap_id: str, faucet_symbol: str = DEFAULT_FAUCET_SYMBOL):
        self.ledger = ledger
        self.admin_cap_id = admin_cap_id
        self.faucet_symbol = faucet_symbol
        self.verbose = ledger.verbose
        self._ledger_lock = threading.RLock()
        self._faucet_lock = threading.RLock()
        self._room_locks: Dict[str, threading.RLock] = {}
        self._room_counter = 0

    @classmethod
    def deploy(
        cls,
        name: str = "main",
        currency: str = DEFAULT_CURRENCY,
        faucet_cooldown_ms: int = DEFAULT_COOLDOWN_MS,
        faucet_max_amount: int = DEFAULT_MAX_AMOUNT,
        initial_time: int = 0,
        verbose: bool = True,
    ) -> Tuple[SavingsEngine, AdminCap]:
        """
        Create a ledger with the currency and faucet registered, and issue the
        deployment's single AdminCap.

        Returns:
            (engine, cap) - the cap must be presented to start, fund and finalize.
        """
        ledger = Ledger(name, initial_time=initial_time, verbose=verbose)
        ledger.register_unit(cash(currency))
        ledger.register_unit(create_faucet_unit(
            DEFAULT_FAUCET_SYMBOL, currency, faucet_cooldown_ms, faucet_max_amount
        ))
        cap = issue_admin_cap()
        return cls(ledger, cap.cap_id, DEFAULT_FAUCET_SYMBOL), cap

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @contextmanager
    def _room_lock(self, room_symbol: str) -> Iterator[None]:
        with self._ledger_lock:
            lock = self._room_locks.setdefault(room_symbol, threading.RLock())
        with lock:
            yield

    def _commit(self, pending: PendingTransaction, now_ms: Optional[int] = None) -> None:
        # The clock moves to now_ms only if the transaction applies
        with self._ledger_lock:
            result = self.ledger.execute(pending, at_time=now_ms)
            rejection = self.ledger.last_rejection
        if result == ExecuteResult.REJECTED:
            raise rejection
        if result == ExecuteResult.ALREADY_APPLIED:
            raise LedgerError(f"Transaction {pending.intent_id} already applied")

    def _log(self, tag: str, message: str) -> None:
        if self.verbose:
            print(f"[{tag}] {message}")

    def _now(self, now_ms: Optional[int]) -> int:
        return self.ledger.current_time if now_ms is None else now_ms

    # ========================================================================
    # PARTICIPANTS
    # ========================================================================

    def register_participant(self, address: str) -> str:
        """
        Register a participant wallet.

        Raises:
            ValueError: If the address is empty or already registered.
            Unauthorized: If the address is the system wallet or a vault wallet.
        """
        if not address or not address.strip():
            raise ValueError("address cannot be empty")
        require_participant_wallet(address)
        with self._ledger_lock:
            return self.ledger.register_wallet(address)

    def balance_of(self, address: str) -> int:
        """Currency balance of a wallet."""
        currency = self.ledger.get_unit_state(self.faucet_symbol)['currency']
        return self.ledger.get_balance(address, currency)

    # ========================================================================
    # FAUCET
    # ========================================================================

    def mint(self, address: str, amount: int, now_ms: Optional[int] = None) -> int:
        """
        Request test tokens from the faucet. Unknown addresses are registered.

        Returns:
            The amount issued.

        Raises:
            AmountTooLarge: If amount exceeds the faucet cap.
            ValueError: If amount is not positive.
            Unauthorized: If address is the system wallet or a vault wallet.
            CooldownActive: If address is still cooling down.
        """
        with self._faucet_lock:
            now = self._now(now_ms)
            pending = compute_mint(self.ledger, self.faucet_symbol, address, amount, now)
            with self._ledger_lock:
                if not self.ledger.is_registered(address):
                    self.ledger.register_wallet(address)
            self._commit(pending, now_ms)
        self._log("MINT", f"{amount} to {address}")
        return amount

    def can_mint(self, address: str, now_ms: Optional[int] = None) -> bool:
        return can_mint(self.ledger, self.faucet_symbol, address, self._now(now_ms))

    def time_until_next_mint(self, address: str, now_ms: Optional[int] = None) -> int:
        return time_until_next_mint(self.ledger, self.faucet_symbol, address, self._now(now_ms))

    # ========================================================================
    # ROOM LIFECYCLE
    # ========================================================================

    def create_room(
        self,
        total_periods: int,
        deposit_amount: int,
        strategy: Strategy,
        start_time_ms: int,
        period_length_ms: int,
        yield_source: str = YIELD_FROM_PRINCIPAL,
        symbol: Optional[str] = None,
    ) -> Tuple[Room, Vault]:
        """
        Create an OPEN room and its empty vault.

        Args:
            total_periods: Number of deposit periods, at least 1
            deposit_amount: Exact payment per deposit action
            strategy: Simulated yield strategy
            start_time_ms: Start of period 0
            period_length_ms: Length of one period
            yield_source: YIELD_FROM_PRINCIPAL or YIELD_FROM_ISSUER
            symbol: Room symbol (default: ROOM_<n>)

        Raises:
            ValueError: On invalid terms, a duplicate symbol, or vault wallets
                        that are already registered.
        """
        currency = self.ledger.get_unit_state(self.faucet_symbol)['currency']
        with self._ledger_lock:
            if symbol is None:
                self._room_counter += 1
                symbol = f"ROOM_{self._room_counter}"
            room_unit = create_room_unit(
                symbol, total_periods, deposit_amount, strategy,
                start_time_ms, period_length_ms, self.admin_cap_id,
                currency=currency, yield_source=yield_source,
            )
            pending = compute_create_room(self.ledger, room_unit)
            vault = create_vault(symbol, currency)
            for wallet in (vault.principal_wallet, vault.reward_wallet):
                if self.ledger.is_registered(wallet):
                    raise ValueError(f"Vault wallet {wallet} is already registered")
            self._commit(pending)
            room = load_room(self.ledger, symbol)
            self.ledger.register_wallet(vault.principal_wallet)
            self.ledger.register_wallet(vault.reward_wallet)
        self._log("ROOM", f"created {symbol}: {total_periods} x {deposit_amount} {currency}, {strategy.name}")
        return room, vault

    def start_room(self, cap: Any, room_symbol: str) -> Room:
        with self._room_lock(room_symbol):
            self._commit(compute_start(self.ledger, cap, room_symbol))
            room = load_room(self.ledger, room_symbol)
        self._log("ROOM", f"started {room_symbol}")
        return room

    def fund_reward_pool(self, cap: Any, room_symbol: str, payer: str, amount: int) -> int:
        """
        Move amount from payer into the room's reward pool.

        Returns:
            The reward pool balance after funding.
        """
        with self._room_lock(room_symbol):
            self._commit(compute_fund_reward(self.ledger, cap, room_symbol, payer, amount))
            balance = load_room(self.ledger, room_symbol).vault.reward(self.ledger)
        self._log("FUND", f"{payer} funded {room_symbol} reward pool with {amount}")
        return balance

    def finalize_room(self, cap: Any, room_symbol: str) -> Room:
        with self._room_lock(room_symbol):
            self._commit(compute_finalize(self.ledger, cap, room_symbol))
            room = load_room(self.ledger, room_symbol)
        self._log(
            "FINALIZE",
            f"{room_symbol} weight={room.total_weight} reward_pool={room.final_reward_pool}",
        )
        return room

    # ========================================================================
    # PARTICIPANT OPERATIONS
    # ========================================================================

    def join_room(self, room_symbol: str, owner: str, now_ms: int, payment: int) -> PlayerPosition:
        """
        Join during period 0 with the first deposit.

        Raises:
            InvalidState, NotYetStarted, JoinClosed, AmountInvalid, AlreadyJoined,
            Unauthorized (owner is a reserved wallet), InsufficientBalance (owner
            cannot pay).
        """
        with self._room_lock(room_symbol):
            self._commit(compute_join(self.ledger, room_symbol, owner, now_ms, payment), now_ms)
            position = load_position(self.ledger, position_symbol(room_symbol, owner))
        self._log("JOIN", f"{owner} joined {room_symbol}")
        return position

    def deposit(self, position_sym: str, owner: str, now_ms: int, payment: int) -> PlayerPosition:
        """
        Deposit for the current period.

        Raises:
            NotPositionOwner, InvalidState, NotYetStarted, PeriodInvalid,
            AlreadyDeposited, AmountInvalid, InsufficientBalance.
        """
        room_symbol = load_position(self.ledger, position_sym).room
        with self._room_lock(room_symbol):
            self._commit(compute_deposit(self.ledger, position_sym, owner, now_ms, payment), now_ms)
            position = load_position(self.ledger, position_sym)
        self._log("DEPOSIT", f"{owner} in {room_symbol} period {position.last_period}")
        return position

    def claim(self, position_sym: str, owner: str) -> Tuple[int, int]:
        """
        Settle a position after finalize.

        Returns:
            (principal_amount, reward_amount) paid to owner.

        Raises:
            NotPositionOwner, RoomNotFinished, AlreadyClaimed, InsufficientBalance.
        """
        room_symbol = load_position(self.ledger, position_sym).room
        with self._room_lock(room_symbol):
            pending = compute_claim(self.ledger, position_sym, owner)
            quote = quote_claim(self.ledger, position_sym)
            self._commit(pending)
        self._log(
            "CLAIM",
            f"{owner} from {room_symbol}: principal={quote.principal_amount} reward={quote.reward_amount}",
        )
        return quote.principal_amount, quote.reward_amount

    # ========================================================================
    # VIEWS
    # ========================================================================

    def get_room(self, room_symbol: str) -> Room:
        return load_room(self.ledger, room_symbol)

    def get_vault(self, room_symbol: str) -> Vault:
        return load_room(self.ledger, room_symbol).vault

    def vault_balances(self, room_symbol: str) -> Dict[str, int]:
        return self.get_vault(room_symbol).balances(self.ledger)

    def get_position(self, room_symbol: str, owner: str) -> PlayerPosition:
        return load_position(self.ledger, position_symbol(room_symbol, owner))

    def current_period(self, room_symbol: str, now_ms: Optional[int] = None) -> int:
        return room_current_period(load_room(self.ledger, room_symbol), self._now(now_ms))

    def preview_claim(self, position_sym: str) -> ClaimQuote:
        return quote_claim(self.ledger, position_sym)

    def principal_shortfall(self, room_symbol: str) -> int:
        return principal_shortfall(self.ledger, room_symbol)
