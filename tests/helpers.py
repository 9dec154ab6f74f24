"""
helpers.py - Shared constants and assertions for escrow tests
"""

from typing import Any, Dict

from hypothesis import strategies as st

from escrow import Deposit, DepositRegistry, Ledger


TENANT = "tenant"
LANDLORD = "landlord"
STRANGER = "stranger"
LEASE = "lease123"

INITIAL_BALANCE = 10000
DEPOSIT_AMOUNT = 1000
DEPOSIT_HEIGHT = 123
RELEASE_HEIGHT = 456


def snapshot(ledger: Ledger) -> Dict[str, Any]:
    """Capture everything an escrow operation could change."""
    return {
        "balances": dict(ledger.balances),
        "deposits": dict(ledger.deposits),
        "log_length": len(ledger.transaction_log),
    }


# =============================================================================
# RANDOM OPERATION SEQUENCES
# =============================================================================

PARTIES = ["alice", "bob", "carol"]
LEASES = ["lease-1", "lease-2", "lease-3"]
OPERATIONS = ["create", "release", "return", "dispute"]


@st.composite
def escrow_operation(draw):
    """One (operation, sender, lease, counterparty, amount) request, valid or not."""
    return (
        draw(st.sampled_from(OPERATIONS)),
        draw(st.sampled_from(PARTIES)),
        draw(st.sampled_from(LEASES)),
        draw(st.sampled_from(PARTIES)),
        draw(st.integers(min_value=1, max_value=6000)),
    )


def apply_operation(registry: DepositRegistry, op) -> Deposit:
    """Route a generated request to the matching registry call."""
    operation, sender, lease, counterparty, amount = op
    if operation == "create":
        return registry.create_deposit(sender, lease, counterparty, amount)
    if operation == "release":
        return registry.release_to_landlord(sender, lease)
    if operation == "return":
        return registry.return_to_tenant(sender, lease)
    return registry.dispute_deposit(sender, lease)
