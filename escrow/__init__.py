"""
escrow - Security Deposit Escrow Ledger

Tenants fund a per-lease security deposit into escrow custody; the deposit is
later released to the landlord (by the tenant), returned to the tenant (by the
landlord), or frozen as disputed (by either). Value is conserved across every
transition.

Usage:
    from escrow import Ledger, DepositRegistry

    ledger = Ledger("rentals", verbose=False)
    ledger.issue("tenant", 10000)

    registry = DepositRegistry(ledger)
    registry.create_deposit("tenant", "lease-1", "landlord", 1000)
    registry.return_to_tenant("landlord", "lease-1")
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Deposit,
    DepositChange,
    DepositStatus,
    PendingTransaction,
    Transaction,
    TransactionOrigin,
    OriginType,
    ExecuteResult,
    build_transaction,
    empty_pending_transaction,
    LedgerError,
    InsufficientFunds,
    WalletNotRegistered,
    EscrowError,
    NotAuthorized,
    NotFound,
    InvalidStatus,
    DuplicateDeposit,
    SYSTEM_WALLET,
    ESCROW_WALLET,
    ERR_NOT_AUTHORIZED,
    ERR_DEPOSIT_NOT_FOUND,
    ERR_INSUFFICIENT_FUNDS,
    ERR_INVALID_STATUS,
    ERR_DUPLICATE_DEPOSIT,
)

# Ledger
from .ledger import Ledger

# Deposit state machine
from .deposits import (
    compute_create_deposit,
    compute_release_to_landlord,
    compute_return_to_tenant,
    compute_dispute,
    get_deposit_details,
    transact as deposit_transact,
)

# Registry
from .registry import DepositRegistry

__all__ = [
    # Core
    'LedgerView', 'Move', 'Deposit', 'DepositChange', 'DepositStatus',
    'PendingTransaction', 'Transaction', 'TransactionOrigin', 'OriginType',
    'ExecuteResult', 'build_transaction', 'empty_pending_transaction',
    'LedgerError', 'InsufficientFunds', 'WalletNotRegistered',
    'EscrowError', 'NotAuthorized', 'NotFound', 'InvalidStatus', 'DuplicateDeposit',
    'SYSTEM_WALLET', 'ESCROW_WALLET',
    'ERR_NOT_AUTHORIZED', 'ERR_DEPOSIT_NOT_FOUND', 'ERR_INSUFFICIENT_FUNDS',
    'ERR_INVALID_STATUS', 'ERR_DUPLICATE_DEPOSIT',
    # Ledger
    'Ledger',
    # Deposits
    'compute_create_deposit', 'compute_release_to_landlord', 'compute_return_to_tenant',
    'compute_dispute', 'get_deposit_details', 'deposit_transact',
    # Registry
    'DepositRegistry',
]

__version__ = '1.0.0'
