"""
registry.py - Deposit Registry

Stateful facade over a Ledger exposing the escrow operations:

    create_deposit(sender, lease_id, landlord, amount)
    release_to_landlord(sender, lease_id)
    return_to_tenant(sender, lease_id)
    dispute_deposit(sender, lease_id)
    get_deposit_details(lease_id)

Each mutating call computes its PendingTransaction with the pure functions in
deposits.py and executes it. Work on one lease id is serialised by a lease
lock held across compute and execute. Lease ids hash onto a fixed set of
locks, so unrelated leases rarely contend and the lock table never grows.
"""

from __future__ import annotations
from typing import Callable, List
import logging
import threading

from .core import (
    Deposit, PendingTransaction, Transaction,
    ESCROW_WALLET,
)
from .ledger import Ledger
from . import deposits

logger = logging.getLogger(__name__)


class DepositRegistry:
    """
    Security deposits for leases, held in escrow custody on a Ledger.

    Errors are raised before anything is applied:
        DuplicateDeposit, InsufficientFunds  (create)
        NotFound, NotAuthorized, InvalidStatus  (release, return, dispute)

    Example:
        ledger = Ledger("rentals", verbose=False)
        ledger.issue("tenant", 10000)
        registry = DepositRegistry(ledger)
        registry.create_deposit("tenant", "lease-1", "landlord", 1000)
        registry.release_to_landlord("tenant", "lease-1")
    """

    def __init__(self, ledger: Ledger, escrow_wallet: str = ESCROW_WALLET, lock_stripes: int = 64):
        """
        Args:
            ledger: Ledger holding balances and deposit records
            escrow_wallet: Custody wallet (registered on the ledger if missing)
            lock_stripes: Number of lease locks; lease ids share them by hash
        """
        if lock_stripes < 1:
            raise ValueError(f"lock_stripes must be positive, got {lock_stripes}")
        self.ledger = ledger
        self.escrow_wallet = escrow_wallet
        if not ledger.is_registered(escrow_wallet):
            ledger.register_wallet(escrow_wallet)
        self._lease_locks: List[threading.Lock] = [threading.Lock() for _ in range(lock_stripes)]

    def _lease_lock(self, lease_id: str) -> threading.Lock:
        return self._lease_locks[hash(lease_id) % len(self._lease_locks)]

    def _run(self, lease_id: str, compute: Callable[[], PendingTransaction]) -> Deposit:
        with self._lease_lock(lease_id):
            pending = compute()
            tx = self.ledger.execute_or_raise(pending)
            deposit = self.ledger.get_deposit(lease_id)
        logger.debug("%s lease=%s -> %s", pending.origin.event_type, lease_id, deposit.status.value)
        if tx is not None:
            logger.debug("lease=%s applied as %s", lease_id, tx.exec_id)
        return deposit

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def create_deposit(self, sender: str, lease_id: str, landlord: str, amount: int) -> Deposit:
        """Fund escrow from sender (the tenant) and open a HELD deposit."""
        return self._run(lease_id, lambda: deposits.compute_create_deposit(
            self.ledger, sender, lease_id, landlord, amount, self.escrow_wallet
        ))

    def release_to_landlord(self, sender: str, lease_id: str) -> Deposit:
        """Tenant-only: pay the escrowed amount to the landlord."""
        return self._run(lease_id, lambda: deposits.compute_release_to_landlord(
            self.ledger, sender, lease_id, self.escrow_wallet
        ))

    def return_to_tenant(self, sender: str, lease_id: str) -> Deposit:
        """Landlord-only: pay the escrowed amount back to the tenant."""
        return self._run(lease_id, lambda: deposits.compute_return_to_tenant(
            self.ledger, sender, lease_id, self.escrow_wallet
        ))

    def dispute_deposit(self, sender: str, lease_id: str) -> Deposit:
        """Tenant or landlord: freeze the deposit; funds stay in escrow."""
        return self._run(lease_id, lambda: deposits.compute_dispute(
            self.ledger, sender, lease_id
        ))

    # ========================================================================
    # QUERY METHODS
    # ========================================================================

    def get_deposit_details(self, lease_id: str) -> Deposit:
        """Read-only lookup; raises NotFound."""
        return deposits.get_deposit_details(self.ledger, lease_id)

    def escrow_balance(self) -> int:
        """Total currently held in escrow custody."""
        return self.ledger.balance_of(self.escrow_wallet)

    def history(self, lease_id: str) -> List[Transaction]:
        """Applied transactions for a lease, oldest first."""
        return [
            tx for tx in self.ledger.transaction_log
            if any(dc.lease_id == lease_id for dc in tx.deposit_changes)
        ]
