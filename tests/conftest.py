"""
conftest.py - Shared pytest fixtures for escrow tests

Provides common fixtures used across unit, functional and conformance tests:
- Basic ledgers (empty, funded)
- Deposit registries (empty, with a HELD deposit)
"""

import pytest

from escrow import Ledger, DepositRegistry

from tests.helpers import (
    TENANT, LANDLORD, STRANGER, LEASE,
    INITIAL_BALANCE, DEPOSIT_AMOUNT, DEPOSIT_HEIGHT,
)


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh test-mode ledger with only the system wallet."""
    return Ledger("test", verbose=False, test_mode=True)


@pytest.fixture
def funded_ledger():
    """Ledger at height 123 with tenant, landlord and stranger each issued 10,000."""
    ledger = Ledger("test", initial_height=DEPOSIT_HEIGHT, verbose=False)
    for wallet in (TENANT, LANDLORD, STRANGER):
        ledger.register_wallet(wallet)
        ledger.issue(wallet, INITIAL_BALANCE)
    return ledger


# =============================================================================
# REGISTRY FIXTURES
# =============================================================================

@pytest.fixture
def registry(funded_ledger):
    """Deposit registry over the funded ledger."""
    return DepositRegistry(funded_ledger)


@pytest.fixture
def held_registry(registry):
    """Registry where the tenant has escrowed 1,000 for lease123 (scenario A)."""
    registry.create_deposit(TENANT, LEASE, LANDLORD, DEPOSIT_AMOUNT)
    return registry
