"""
ledger.py - Stateful Escrow Ledger

The Ledger class is the central state manager for the escrow system.
It is the only module that mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Holds wallet balances, including escrow custody, and the deposit records
    - Executes transactions atomically (all moves and deposit changes, or none)
    - Tracks block height and provides clone() and replay()
    - Always validates and always logs - no exceptions
"""

from __future__ import annotations
from typing import Dict, List, Set, Optional, Tuple, Any
import logging
import threading

from .core import (
    # Types
    Move, Transaction, Deposit,
    PendingTransaction, TransactionOrigin, OriginType,
    ExecuteResult, Balances,
    build_transaction,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    LedgerError, InsufficientFunds, WalletNotRegistered,
    InvalidStatus, DuplicateDeposit,
)

logger = logging.getLogger(__name__)


class Ledger:
    """
    Single-asset ledger with escrow custody, deposit records and an audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    deposit functions that access only read-only methods.

    Design Principles:
        - Always validates: every transaction is checked against non-negative
          balances, its build height and the current deposit records before
          anything is applied.
        - Always logs: every applied transaction is recorded in the audit trail,
          enabling replay().

    Thread Safety:
        execute() and the balance primitives run under one re-entrant lock, so
        two debits against the same wallet can never both pass the funds check
        against a stale balance.

    Example:
        ledger = Ledger("main")
        ledger.register_wallet("alice")
        ledger.issue("alice", 10000)
        ledger.transfer("alice", "bob", 100)
    """

    def __init__(
        self,
        name: str,
        initial_height: int = 0,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_height: Starting block height (default: 0)
            verbose: Print each applied transaction (default: True)
            test_mode: Enable test mode to allow set_balance() calls (default: False)
        """
        if initial_height < 0:
            raise ValueError(f"initial_height cannot be negative, got {initial_height}")
        self.name = name
        self.balances: Balances = {}
        self.deposits: Dict[str, Deposit] = {}
        self.registered_wallets: Set[str] = set()
        self.seen_intent_ids: Set[str] = set()  # For idempotency (content-based)
        self.transaction_log: List[Transaction] = []
        self._current_height: int = initial_height
        self.verbose = verbose
        self._test_mode = test_mode
        # Monotonic sequence counter for execution ordering
        self._next_sequence: int = 0
        self._lock = threading.RLock()

        # Auto-register the system wallet (used for issuance/redemption)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = 0

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_height(self) -> int:
        """Current block height of the ledger."""
        return self._current_height

    def balance_of(self, wallet_id: str) -> int:
        """Balance of a wallet; 0 for wallets the ledger has never seen."""
        return self.balances.get(wallet_id, 0)

    def get_deposit(self, lease_id: str) -> Optional[Deposit]:
        """Deposit record for a lease, or None."""
        return self.deposits.get(lease_id)

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def get_balance(self, wallet_id: str) -> int:
        """
        Strict balance lookup.

        Raises:
            WalletNotRegistered: If wallet is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return self.balances[wallet_id]

    def list_deposits(self) -> List[Deposit]:
        """All deposit records, ordered by lease id."""
        return [self.deposits[k] for k in sorted(self.deposits)]

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    def total_supply(self) -> int:
        """
        Sum of every non-system balance, escrow custody included.

        Escrow operations only move value between these wallets, so this total
        is unchanged by any of them. Only issue(), redeem(), credit() and debit()
        move it.
        """
        return sum(
            self.balances[w] for w in sorted(self.registered_wallets)
            if w != SYSTEM_WALLET
        )

    def verify_conservation(self, expected_total: Optional[int] = None) -> Dict[str, Any]:
        """
        Verify the conservation law.

        Returns:
            Dict with keys:
            - 'valid': bool - True if conservation holds
            - 'total': int - Current total_supply()
            - 'net': int - Sum of all balances including the system wallet
            - 'discrepancy': Optional[int] - total - expected_total when given and different

        Example:
            before = ledger.total_supply()
            registry.release_to_landlord("tenant", "lease-1")
            assert ledger.verify_conservation(before)['valid']
        """
        total = self.total_supply()
        net = total + self.balances[SYSTEM_WALLET]
        discrepancy = None
        if expected_total is not None and total != expected_total:
            discrepancy = total - expected_total
        # Fixture balances bypass issuance, so the net check is only meaningful outside test mode
        net_ok = self._test_mode or net == 0
        return {
            'valid': discrepancy is None and net_ok,
            'total': total,
            'net': net,
            'discrepancy': discrepancy,
        }

    # ========================================================================
    # HEIGHT MANAGEMENT
    # ========================================================================

    def advance_height(self, new_height: int) -> None:
        """
        Advance the ledger's block height.

        Raises:
            ValueError: If new_height is below the current height
        """
        if new_height < self._current_height:
            raise ValueError(
                f"Cannot move height backwards: {new_height} < {self._current_height}"
            )
        self._current_height = new_height

    def mine(self, blocks: int = 1) -> int:
        """Advance the height by a number of blocks and return the new height."""
        if blocks < 0:
            raise ValueError(f"blocks cannot be negative, got {blocks}")
        self.advance_height(self._current_height + blocks)
        return self._current_height

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet in the ledger.

        Raises:
            ValueError: If wallet is already registered or the id is empty
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("wallet_id cannot be empty")
        with self._lock:
            if wallet_id in self.registered_wallets:
                raise ValueError(f"Wallet {wallet_id} already registered")
            self.registered_wallets.add(wallet_id)
            self.balances[wallet_id] = 0
        return wallet_id

    def _ensure_wallet(self, wallet_id: str) -> None:
        if wallet_id not in self.registered_wallets:
            self.registered_wallets.add(wallet_id)
            self.balances[wallet_id] = 0

    def set_balance(self, wallet_id: str, quantity: int) -> None:
        """
        Set a wallet's balance directly.

        WARNING: This bypasses issuance and is only available in test mode.

        Raises:
            LedgerError: If called when test_mode is False
            WalletNotRegistered: If wallet is not registered
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use issue() or transfer() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if quantity < 0:
            raise ValueError(f"Balance cannot be negative, got {quantity}")
        with self._lock:
            self.balances[wallet_id] = int(quantity)

    # ========================================================================
    # BALANCE PRIMITIVES (Mutating)
    # ========================================================================

    def _system_move(self, source: str, dest: str, amount: int, event_type: str) -> Transaction:
        """Log a single move against the system wallet under a SYSTEM origin."""
        _check_amount(amount)
        with self._lock:
            party = dest if source == SYSTEM_WALLET else source
            origin = TransactionOrigin(OriginType.SYSTEM, SYSTEM_WALLET, event_type=event_type)
            contract_id = f"{event_type.lower()}:{party}:{self._next_sequence}"
            move = Move(amount, source, dest, contract_id)
            return self.execute_or_raise(build_transaction(self, [move], origin=origin))

    def debit(self, party: str, amount: int) -> Transaction:
        """
        Decrease a party's balance against the system wallet.

        A lone debit removes value from circulation; use transfer() to move it.
        The change is logged like any other transaction, so replay() sees it.

        Raises:
            InsufficientFunds: If the balance is below amount
        """
        return self._system_move(party, SYSTEM_WALLET, amount, "DEBIT")

    def credit(self, party: str, amount: int) -> Transaction:
        """Increase a party's balance against the system wallet, registering the wallet if needed."""
        return self._system_move(SYSTEM_WALLET, party, amount, "CREDIT")

    def transfer(self, source: str, dest: str, amount: int, contract_id: Optional[str] = None) -> Transaction:
        """
        Move amount from source to dest atomically and log it.

        Raises:
            InsufficientFunds: If source cannot cover amount (nothing is applied)
        """
        with self._lock:
            contract_id = contract_id or f"transfer:{self._next_sequence}"
            pending = build_transaction(self, [Move(amount, source, dest, contract_id)])
            return self.execute_or_raise(pending)

    def issue(self, wallet_id: str, amount: int) -> Transaction:
        """Issue new value from the system wallet to a wallet."""
        return self._system_move(SYSTEM_WALLET, wallet_id, amount, "ISSUE")

    def redeem(self, wallet_id: str, amount: int) -> Transaction:
        """Return value from a wallet to the system wallet."""
        return self._system_move(wallet_id, SYSTEM_WALLET, amount, "REDEEM")

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{height}
        """
        return f"exec:{self.name}:{sequence:012d}:{self._current_height}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves and deposit changes succeed together or all fail together.
        Execution is idempotent: a pending transaction with the same intent_id
        will not be applied twice.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if transaction was already executed
            ExecuteResult.REJECTED if validation failed
        """
        result, _, _ = self._execute(pending)
        return result

    def execute_or_raise(self, pending: PendingTransaction) -> Optional[Transaction]:
        """
        Execute a PendingTransaction and raise the validation error on rejection.

        Returns:
            The logged Transaction, or None for an empty pending transaction

        Raises:
            InsufficientFunds: A debit would go below zero
            InvalidStatus: A deposit record changed since the transaction was built
            DuplicateDeposit: A deposit was created concurrently for the same lease
            LedgerError: The intent was already applied, or the build height is ahead
        """
        result, tx, error = self._execute(pending)
        if result == ExecuteResult.REJECTED:
            raise error
        if result == ExecuteResult.ALREADY_APPLIED:
            raise LedgerError(f"Transaction {pending.intent_id} already applied")
        return tx

    def _execute(
        self, pending: PendingTransaction
    ) -> Tuple[ExecuteResult, Optional[Transaction], Optional[LedgerError]]:
        if pending.is_empty():
            return ExecuteResult.APPLIED, None, None

        with self._lock:
            # Idempotency check based on intent_id (content hash)
            if pending.intent_id in self.seen_intent_ids:
                logger.info("ALREADY_APPLIED: intent_id=%s", pending.intent_id)
                return ExecuteResult.ALREADY_APPLIED, None, None

            error = self._validate_pending(pending)
            if error is not None:
                logger.info("REJECTED %s: %s", pending.intent_id, error)
                return ExecuteResult.REJECTED, None, error

            sequence = self._next_sequence
            self._next_sequence += 1

            tx = Transaction(
                moves=pending.moves,
                deposit_changes=pending.deposit_changes,
                origin=pending.origin,
                height=pending.height,
                intent_id=pending.intent_id,
                exec_id=self._generate_exec_id(sequence),
                ledger_name=self.name,
                execution_height=self._current_height,
                sequence_number=sequence,
            )

            self._execute_moves(tx.moves)
            for dc in tx.deposit_changes:
                self.deposits[dc.lease_id] = dc.new

            # Log transaction (always - audit trail is mandatory)
            self.transaction_log.append(tx)
            self.seen_intent_ids.add(pending.intent_id)

        logger.debug("APPLIED %s %r", tx.exec_id, tx.origin)
        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED, tx, None

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """
        Print transaction details and result.

        Uses Transaction.__repr__ and appends a result line.
        """
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
        Validate pending transaction against all constraints.

        Checks performed:
        1. Height validation (transaction must not be built ahead of the ledger)
        2. Deposit records (each change's old snapshot must equal the stored record)
        3. Balances (no non-system wallet may end below zero)

        Returns:
            None if valid, otherwise the error describing the first failure
        """
        if pending.height > self._current_height:
            return LedgerError(
                f"future height: {pending.height} > {self._current_height}"
            )

        for dc in pending.deposit_changes:
            current = self.deposits.get(dc.lease_id)
            if dc.old is None and current is not None:
                return DuplicateDeposit(f"Deposit for lease {dc.lease_id} already exists")
            if current != dc.old:
                return InvalidStatus(
                    f"Stale deposit for lease {dc.lease_id}: expected {dc.old!r}, found {current!r}"
                )

        net: Dict[str, int] = {}
        for move in pending.moves:
            net[move.source] = net.get(move.source, 0) - move.quantity
            net[move.dest] = net.get(move.dest, 0) + move.quantity

        # SYSTEM_WALLET is exempt - it issues and redeems
        for wallet, delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            proposed = self.balance_of(wallet) + delta
            if proposed < 0:
                return InsufficientFunds(
                    f"{wallet}: balance {self.balance_of(wallet)} cannot cover {-delta}"
                )

        return None

    def _execute_moves(self, moves) -> None:
        """
        Apply already-validated moves.

        Funds were checked on the net effect of the whole transaction, so a
        wallet may dip below zero between two moves of the same transaction.
        """
        for move in moves:
            self._ensure_wallet(move.source)
            self._ensure_wallet(move.dest)
            self.balances[move.source] -= move.quantity
            self.balances[move.dest] += move.quantity

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create an independent copy of this ledger.

        Cloned state includes balances, deposit records, wallet registrations,
        the transaction log, the height and configuration.
        """
        with self._lock:
            cloned = Ledger.__new__(Ledger)
            cloned.name = self.name
            cloned._current_height = self._current_height
            cloned.verbose = self.verbose
            cloned._test_mode = self._test_mode
            cloned._lock = threading.RLock()

            # Deposit records are frozen, a shallow copy is enough
            cloned.deposits = dict(self.deposits)
            cloned.balances = dict(self.balances)
            cloned.registered_wallets = self.registered_wallets.copy()
            cloned.seen_intent_ids = self.seen_intent_ids.copy()
            cloned.transaction_log = list(self.transaction_log)
            cloned._next_sequence = self._next_sequence
        return cloned

    def replay(self, from_tx: int = 0) -> Ledger:
        """
        Create a new ledger by replaying the transaction log.

        Note: Balances set via set_balance() are NOT replayed because they are
        not part of the transaction log. Use clone() to preserve them.

        Args:
            from_tx: Starting transaction index (0 = replay from beginning)

        Raises:
            LedgerError: If any logged transaction is rejected during replay
        """
        new_ledger = Ledger(
            name=f"{self.name}_replayed",
            initial_height=0,
            verbose=self.verbose,
            test_mode=self._test_mode,
        )

        for wallet in sorted(self.registered_wallets):
            # System wallet is auto-registered in Ledger.__init__
            if wallet != SYSTEM_WALLET:
                new_ledger.register_wallet(wallet)

        for tx in self.transaction_log[from_tx:]:
            if tx.height > new_ledger._current_height:
                new_ledger.advance_height(tx.height)
            if tx.execution_height > new_ledger._current_height:
                new_ledger.advance_height(tx.execution_height)

            pending = PendingTransaction(
                moves=tx.moves,
                deposit_changes=tx.deposit_changes,
                origin=tx.origin,
                height=tx.height,
            )
            result = new_ledger.execute(pending)
            if result == ExecuteResult.REJECTED:
                raise LedgerError(f"Replay failed at tx {tx.exec_id}")

        if self._current_height > new_ledger._current_height:
            new_ledger.advance_height(self._current_height)
        return new_ledger


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be int, got {type(amount)}")
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")
