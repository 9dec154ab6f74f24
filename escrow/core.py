"""
Core types and pure functions for the security-deposit escrow ledger.

This module provides the foundational data structures and protocols for the escrow:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, Deposit, DepositChange, PendingTransaction, Transaction
3. Exceptions: LedgerError and the escrow error taxonomy (with contract error codes)
4. Type aliases: Balances
5. Builders: build_transaction() and empty_pending_transaction()

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
import hashlib
from typing import (
    Dict, List, Set, Optional, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption.
# The system wallet is exempt from balance validation and can hold any balance,
# so the sum of every balance (system included) is always zero.
SYSTEM_WALLET = "system"

# Escrow custody: funds held by the contract on behalf of no individual party.
ESCROW_WALLET = "escrow"

# Contract error codes.
ERR_NOT_AUTHORIZED = 100
ERR_DEPOSIT_NOT_FOUND = 101
ERR_INSUFFICIENT_FUNDS = 102
ERR_INVALID_STATUS = 103
ERR_DUPLICATE_DEPOSIT = 104


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to the integer balance held by that wallet.
Balances = Dict[str, int]


# ============================================================================
# ENUMS
# ============================================================================

class DepositStatus(str, Enum):
    """Lifecycle state of a deposit. HELD is initial, the others are terminal."""
    HELD = "held"
    RELEASED = "released"
    DISPUTED = "disputed"


class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was successfully validated and applied to the ledger.
    ALREADY_APPLIED: Transaction intent was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation due to insufficient funds or a
              stale deposit record.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Tenant or landlord acting on a deposit
    SYSTEM = "system"                     # Issuance, redemption, fixtures
    TRANSFER = "transfer"                 # Plain wallet-to-wallet transfer


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    code: Optional[int] = None


class InsufficientFunds(LedgerError):
    """Raised when a debit would take a wallet balance below zero."""
    code = ERR_INSUFFICIENT_FUNDS


class WalletNotRegistered(LedgerError):
    """Raised when a strict lookup targets a wallet the ledger has never seen."""
    code = None


class EscrowError(LedgerError):
    """Base exception for deposit state machine violations."""
    pass


class NotAuthorized(EscrowError):
    """Raised when the sender lacks the role required for the transition."""
    code = ERR_NOT_AUTHORIZED


class NotFound(EscrowError):
    """Raised when no deposit exists for the lease identifier."""
    code = ERR_DEPOSIT_NOT_FOUND


class InvalidStatus(EscrowError):
    """Raised when the deposit is not in the state the operation requires."""
    code = ERR_INVALID_STATUS


class DuplicateDeposit(EscrowError):
    """Raised when a deposit already exists for the lease identifier."""
    code = ERR_DUPLICATE_DEPOSIT


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Deposit functions receive a LedgerView and return a PendingTransaction,
    declaring by their signature that they cannot mutate anything. The Ledger
    class implements this protocol; tests use FakeView.
    """

    @property
    def current_height(self) -> int:
        """Return the current block height of the ledger."""
        ...

    def balance_of(self, wallet_id: str) -> int:
        """Return the balance of a wallet, 0 for unknown wallets."""
        ...

    def get_deposit(self, lease_id: str) -> Optional['Deposit']:
        """Return the deposit for a lease, or None if none exists."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all known wallet IDs."""
        ...


# ============================================================================
# DEPOSIT RECORD
# ============================================================================

@dataclass(frozen=True, slots=True)
class Deposit:
    """
    Security deposit held in escrow for one lease.

    Attributes:
        lease_id: Unique lease identifier (the registry key).
        tenant: Wallet that funded the deposit.
        landlord: Wallet designated to receive the funds on release.
        amount: Escrowed amount, fixed at creation.
        status: Current DepositStatus.
        deposit_height: Block height at creation.
        release_height: Block height of the release, 0 unless RELEASED.

    Only status and release_height ever change, and only through with_status().
    """
    lease_id: str
    tenant: str
    landlord: str
    amount: int
    status: DepositStatus = DepositStatus.HELD
    deposit_height: int = 0
    release_height: int = 0

    def __post_init__(self):
        if not self.lease_id or not self.lease_id.strip():
            raise ValueError("Deposit lease_id cannot be empty")
        if not self.tenant or not self.tenant.strip():
            raise ValueError("Deposit tenant cannot be empty")
        if not self.landlord or not self.landlord.strip():
            raise ValueError("Deposit landlord cannot be empty")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"Deposit amount must be int, got {type(self.amount)}")
        if self.amount <= 0:
            raise ValueError(f"Deposit amount must be positive, got {self.amount}")
        if not isinstance(self.status, DepositStatus):
            object.__setattr__(self, 'status', DepositStatus(self.status))

    @property
    def is_held(self) -> bool:
        return self.status is DepositStatus.HELD

    def with_status(self, status: DepositStatus, release_height: int = 0) -> 'Deposit':
        """Return a copy with a new status and release height; all other fields are kept."""
        return replace(self, status=status, release_height=release_height)

    def to_dict(self) -> Dict[str, Any]:
        """Render the record in the contract's camelCase shape."""
        return {
            'tenant': self.tenant,
            'landlord': self.landlord,
            'amount': self.amount,
            'status': self.status.value,
            'depositDate': self.deposit_height,
            'releaseDate': self.release_height,
        }


@dataclass(frozen=True, slots=True)
class DepositChange:
    """
    Record of a deposit change for transaction logging and replay.

    Stores complete before/after snapshots:
    - Forward replay: store new
    - Stale detection: the ledger refuses the change unless its current
      record equals old
    - Audit queries: compute changed_fields() on demand

    Attributes:
        lease_id: Lease whose deposit changed
        old: Deposit before the change (None on creation)
        new: Deposit after the change
    """
    lease_id: str
    old: Optional[Deposit]
    new: Deposit

    def __post_init__(self):
        if self.new.lease_id != self.lease_id:
            raise ValueError(
                f"DepositChange lease_id {self.lease_id} does not match record {self.new.lease_id}"
            )

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """
        Compute fields that differ between old and new.

        Returns:
            Dict mapping field name to (old_value, new_value) tuples.
        """
        old = self.old.to_dict() if self.old is not None else {}
        new = self.new.to_dict()
        changes = {}
        for key in sorted(set(old) | set(new)):
            if old.get(key) != new.get(key):
                changes[key] = (old.get(key), new.get(key))
        return changes


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identity that triggered the transaction (sender, "system", ...)
        lease_id: Lease the transaction acts on (if applicable)
        event_type: Specific event (e.g., "CREATE", "RELEASE", "DISPUTE")
    """
    origin_type: OriginType
    source_id: str
    lease_id: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.lease_id:
            parts.append(f"lease={self.lease_id}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (positive int).
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: int
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity}: {self.source}→{self.dest})"


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Dict keys are sorted so that insertion order never changes the output.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, Deposit):
        return f"Dep:{_canonicalize({'leaseId': value.lease_id, **value.to_dict()})}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    deposit_changes: Tuple[DepositChange, ...],
    origin: TransactionOrigin,
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    The hash covers moves, deposit changes and origin only, never heights or
    ledger-specific data, so the same intent always hashes the same.
    Used for idempotency checking.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (m.quantity, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.lease_id:
        content_parts.append(f"lease:{origin.lease_id}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for m in sorted_moves:
        content_parts.append(f"move:{m.quantity}|{m.source}|{m.dest}|{m.contract_id}")

    for dc in sorted(deposit_changes, key=lambda d: d.lease_id):
        content_parts.append(
            f"deposit_change:{dc.lease_id}|{_canonicalize(dc.old)}|{_canonicalize(dc.new)}"
        )

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Created by deposit functions and submitted to the ledger for execution.

    Lifecycle:
    1. A deposit function builds a PendingTransaction from a LedgerView
    2. intent_id is auto-computed from content (deterministic hash)
    3. Ledger.execute() validates and applies it, creating a Transaction record

    Attributes:
        moves: Tuple of value transfers between wallets
        deposit_changes: Tuple of deposit record changes (old and new snapshots)
        origin: Who/what created this transaction and why
        height: Block height at which the pending transaction was built
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    deposit_changes: Tuple[DepositChange, ...]
    origin: TransactionOrigin
    height: int
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(self.moves, self.deposit_changes, self.origin)
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves and no deposit changes."""
        return not self.moves and not self.deposit_changes

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.deposit_changes)} deposit changes, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    deposit_changes: Optional[List[DepositChange]] = None,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and deposit changes.

    Args:
        view: Read-only ledger view (provides current_height)
        moves: List of moves to include in the transaction
        deposit_changes: Optional list of DepositChange records
        origin: Transaction origin (defaults to a TRANSFER origin)

    Returns:
        A PendingTransaction ready for execution

    Example:
        def release(view, deposit):
            moves = [Move(deposit.amount, ESCROW_WALLET, deposit.landlord, "release")]
            new = deposit.with_status(DepositStatus.RELEASED, view.current_height)
            return build_transaction(view, moves, [DepositChange(deposit.lease_id, deposit, new)])
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.TRANSFER,
            source_id="transfer",
        )

    return PendingTransaction(
        moves=tuple(moves),
        deposit_changes=tuple(deposit_changes or ()),
        origin=origin,
        height=view.current_height,
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """
    Create an empty PendingTransaction (no moves, no deposit changes).

    Args:
        view: Read-only ledger view (provides current_height)
    """
    return PendingTransaction(
        moves=(),
        deposit_changes=(),
        origin=TransactionOrigin(OriginType.SYSTEM, "noop"),
        height=view.current_height,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Created by the ledger when executing a PendingTransaction.

    Attributes:
        moves: Tuple of value transfers between wallets
        deposit_changes: Tuple of deposit record changes
        origin: Who/what created this transaction and why
        height: Block height at which the PendingTransaction was built
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + height)
        ledger_name: Name of the ledger that executed this
        execution_height: Block height at which this was applied
        sequence_number: Monotonic sequence within the ledger (for ordering)
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    deposit_changes: Tuple[DepositChange, ...]
    origin: TransactionOrigin
    height: int
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_height: int
    sequence_number: int
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.deposit_changes:
            raise ValueError("Transaction must have moves or deposit_changes")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100  # Inner content width
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   height         : ' + str(self.height))}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   executed at    : ' + str(self.execution_height))}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.deposit_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Deposit Changes (' + str(len(self.deposit_changes)) + '):')}│")
            for dc in self.deposit_changes:
                lines.append(f"│{pad('   [' + dc.lease_id + ']')}│")
                for field_name, (old_val, new_val) in dc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)
