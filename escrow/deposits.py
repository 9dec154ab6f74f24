"""
deposits.py - Security Deposit State Machine

This module computes every deposit transition as a PendingTransaction:
1. compute_create_deposit() - Tenant funds escrow and opens a HELD deposit
2. compute_release_to_landlord() - Tenant releases the escrowed amount to the landlord
3. compute_return_to_tenant() - Landlord waives the claim and returns the amount
4. compute_dispute() - Either party freezes the deposit as DISPUTED
5. get_deposit_details() - Read-only lookup
6. transact() - Event-driven interface dispatching the four transitions

State machine:

    (none) --create--> HELD --release/return--> RELEASED
                        |
                        +------dispute--------> DISPUTED

Release authority is inverted: only the tenant can push funds to the landlord
and only the landlord can push funds back to the tenant, so each payout needs
the consent of the party it disadvantages. RELEASED and DISPUTED are terminal.

Every function validates in a fixed order (existence, authorization, status,
funds) and raises the first violation before building anything. All functions
take a LedgerView (read-only) and return immutable results.
"""

from __future__ import annotations
from typing import Any

from .core import (
    LedgerView, Move, PendingTransaction, Deposit, DepositChange, DepositStatus,
    TransactionOrigin, OriginType,
    ESCROW_WALLET, SYSTEM_WALLET,
    InsufficientFunds, NotAuthorized, NotFound, InvalidStatus, DuplicateDeposit,
    build_transaction,
)


EVENT_CREATE = "CREATE"
EVENT_RELEASE = "RELEASE"
EVENT_RETURN = "RETURN"
EVENT_DISPUTE = "DISPUTE"


def _origin(sender: str, lease_id: str, event_type: str) -> TransactionOrigin:
    return TransactionOrigin(
        origin_type=OriginType.USER_ACTION,
        source_id=sender,
        lease_id=lease_id,
        event_type=event_type,
    )


def _require_deposit(view: LedgerView, lease_id: str) -> Deposit:
    deposit = view.get_deposit(lease_id)
    if deposit is None:
        raise NotFound(f"No deposit for lease {lease_id}")
    return deposit


def _require_held(deposit: Deposit) -> None:
    if not deposit.is_held:
        raise InvalidStatus(
            f"Deposit for lease {deposit.lease_id} is {deposit.status.value}, expected held"
        )


def get_deposit_details(view: LedgerView, lease_id: str) -> Deposit:
    """
    Look up the deposit for a lease.

    Raises:
        NotFound: If no deposit exists for lease_id
    """
    return _require_deposit(view, lease_id)


def compute_create_deposit(
    view: LedgerView,
    sender: str,
    lease_id: str,
    landlord: str,
    amount: int,
    escrow_wallet: str = ESCROW_WALLET,
) -> PendingTransaction:
    """
    Open a deposit: the sender becomes the tenant and funds escrow custody.

    Args:
        view: Read-only ledger access
        sender: Tenant funding the deposit
        lease_id: Lease identifier, unused so far
        landlord: Wallet entitled to the funds on release
        amount: Positive integer amount to escrow
        escrow_wallet: Custody wallet

    Returns:
        PendingTransaction containing:
        - Move(amount, sender -> escrow)
        - DepositChange creating the HELD record at the current height

    Raises:
        ValueError: If lease_id is empty, amount is not a positive int, landlord
            is empty, or either party is the escrow or system wallet
        DuplicateDeposit: If a deposit already exists for lease_id
        InsufficientFunds: If the sender's balance is below amount

    Example:
        pending = compute_create_deposit(ledger, "tenant", "lease-1", "landlord", 1000)
        ledger.execute(pending)
    """
    if not lease_id or not lease_id.strip():
        raise ValueError("lease_id cannot be empty")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be int, got {type(amount)}")
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")
    if not landlord or not landlord.strip():
        raise ValueError("landlord cannot be empty")
    reserved = {escrow_wallet, SYSTEM_WALLET} & {sender, landlord}
    if reserved:
        raise ValueError(f"{', '.join(sorted(reserved))} is reserved and cannot be a party")

    if view.get_deposit(lease_id) is not None:
        raise DuplicateDeposit(f"Deposit for lease {lease_id} already exists")

    balance = view.balance_of(sender)
    if balance < amount:
        raise InsufficientFunds(f"{sender}: balance {balance} < deposit {amount}")

    deposit = Deposit(
        lease_id=lease_id,
        tenant=sender,
        landlord=landlord,
        amount=amount,
        status=DepositStatus.HELD,
        deposit_height=view.current_height,
        release_height=0,
    )
    moves = [Move(amount, sender, escrow_wallet, f"deposit_{lease_id}_fund")]
    changes = [DepositChange(lease_id=lease_id, old=None, new=deposit)]
    return build_transaction(view, moves, changes, _origin(sender, lease_id, EVENT_CREATE))


def compute_release_to_landlord(
    view: LedgerView,
    sender: str,
    lease_id: str,
    escrow_wallet: str = ESCROW_WALLET,
) -> PendingTransaction:
    """
    Tenant releases the escrowed amount to the landlord.

    Returns:
        PendingTransaction moving the amount escrow -> landlord and marking the
        deposit RELEASED at the current height.

    Raises:
        NotFound: No deposit for lease_id
        NotAuthorized: sender is not the tenant
        InvalidStatus: deposit is not HELD
    """
    deposit = _require_deposit(view, lease_id)
    if sender != deposit.tenant:
        raise NotAuthorized(f"{sender} is not the tenant of lease {lease_id}")
    _require_held(deposit)

    moves = [Move(deposit.amount, escrow_wallet, deposit.landlord, f"deposit_{lease_id}_release")]
    new = deposit.with_status(DepositStatus.RELEASED, release_height=view.current_height)
    changes = [DepositChange(lease_id=lease_id, old=deposit, new=new)]
    return build_transaction(view, moves, changes, _origin(sender, lease_id, EVENT_RELEASE))


def compute_return_to_tenant(
    view: LedgerView,
    sender: str,
    lease_id: str,
    escrow_wallet: str = ESCROW_WALLET,
) -> PendingTransaction:
    """
    Landlord returns the escrowed amount to the tenant.

    Raises:
        NotFound: No deposit for lease_id
        NotAuthorized: sender is not the landlord
        InvalidStatus: deposit is not HELD
    """
    deposit = _require_deposit(view, lease_id)
    if sender != deposit.landlord:
        raise NotAuthorized(f"{sender} is not the landlord of lease {lease_id}")
    _require_held(deposit)

    moves = [Move(deposit.amount, escrow_wallet, deposit.tenant, f"deposit_{lease_id}_return")]
    new = deposit.with_status(DepositStatus.RELEASED, release_height=view.current_height)
    changes = [DepositChange(lease_id=lease_id, old=deposit, new=new)]
    return build_transaction(view, moves, changes, _origin(sender, lease_id, EVENT_RETURN))


def compute_dispute(
    view: LedgerView,
    sender: str,
    lease_id: str,
) -> PendingTransaction:
    """
    Either party marks the deposit DISPUTED.

    No funds move: the amount stays in escrow custody. There is no
    transition out of DISPUTED.

    Raises:
        NotFound: No deposit for lease_id
        NotAuthorized: sender is neither tenant nor landlord
        InvalidStatus: deposit is not HELD
    """
    deposit = _require_deposit(view, lease_id)
    if sender not in (deposit.tenant, deposit.landlord):
        raise NotAuthorized(f"{sender} is not a party to lease {lease_id}")
    _require_held(deposit)

    new = deposit.with_status(DepositStatus.DISPUTED, release_height=0)
    changes = [DepositChange(lease_id=lease_id, old=deposit, new=new)]
    return build_transaction(view, [], changes, _origin(sender, lease_id, EVENT_DISPUTE))


def transact(
    view: LedgerView,
    event_type: str,
    sender: str,
    lease_id: str,
    **kwargs: Any,
) -> PendingTransaction:
    """
    Generate a PendingTransaction for a deposit event.

    Args:
        view: Read-only ledger access
        event_type: CREATE, RELEASE, RETURN or DISPUTE
        sender: Identity performing the operation
        lease_id: Lease identifier
        **kwargs: Event-specific parameters:
            - CREATE: landlord (str), amount (int)
            - RELEASE / RETURN: none
            - DISPUTE: none
            - escrow_wallet (str) is accepted by every event that moves funds

    Raises:
        ValueError: Unknown event_type or missing CREATE parameters

    Example:
        pending = transact(view, "CREATE", "tenant", "lease-1", landlord="owner", amount=1000)
    """
    escrow_wallet = kwargs.get('escrow_wallet', ESCROW_WALLET)

    if event_type == EVENT_CREATE:
        landlord = kwargs.get('landlord')
        amount = kwargs.get('amount')
        if landlord is None or amount is None:
            raise ValueError("CREATE requires 'landlord' and 'amount'")
        return compute_create_deposit(view, sender, lease_id, landlord, amount, escrow_wallet)
    if event_type == EVENT_RELEASE:
        return compute_release_to_landlord(view, sender, lease_id, escrow_wallet)
    if event_type == EVENT_RETURN:
        return compute_return_to_tenant(view, sender, lease_id, escrow_wallet)
    if event_type == EVENT_DISPUTE:
        return compute_dispute(view, sender, lease_id)

    raise ValueError(
        f"Unknown event_type '{event_type}' for deposits. "
        f"Supported: {EVENT_CREATE}, {EVENT_RELEASE}, {EVENT_RETURN}, {EVENT_DISPUTE}"
    )
