"""
Atomicity Conformance Tests

INVARIANT: A transaction applies completely or not at all.

    ∀ transaction T:
        execute(T) = REJECTED ⟹ state after = state before

A deposit transition consists of a balance move and a record change;
neither may ever be observed without the other.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from escrow import (
    Ledger, Move, Deposit, DepositChange, DepositStatus, ExecuteResult,
    build_transaction, compute_release_to_landlord, compute_return_to_tenant,
    compute_dispute, InvalidStatus, InsufficientFunds,
)

from tests.helpers import snapshot, TENANT, LANDLORD, LEASE


class TestAtomicityProperties:

    @given(
        st.integers(min_value=1, max_value=1000),
        st.integers(min_value=1, max_value=1000),
    )
    @settings(max_examples=100)
    def test_overdrawn_multi_move_applies_nothing(self, first, second):
        """
        PROPERTY: If any wallet would end negative, no move of the transaction applies.
        """
        ledger = Ledger("test", verbose=False, test_mode=True)
        for wallet in ("alice", "bob", "carol"):
            ledger.register_wallet(wallet)
        ledger.set_balance("alice", 500)

        before = snapshot(ledger)
        pending = build_transaction(ledger, [
            Move(first, "alice", "bob", "leg1"),
            Move(second, "alice", "carol", "leg2"),
        ])
        result = ledger.execute(pending)

        if first + second > 500:
            assert result == ExecuteResult.REJECTED
            assert snapshot(ledger) == before
        else:
            assert result == ExecuteResult.APPLIED
            assert ledger.balance_of("alice") == 500 - first - second


class TestDepositAtomicity:

    def test_stale_release_after_dispute_is_rejected(self, held_registry):
        """A release built before a dispute must not pay out after it."""
        ledger = held_registry.ledger
        stale_release = compute_release_to_landlord(ledger, TENANT, LEASE)

        held_registry.dispute_deposit(LANDLORD, LEASE)
        before = snapshot(ledger)

        assert ledger.execute(stale_release) == ExecuteResult.REJECTED
        assert snapshot(ledger) == before
        assert ledger.get_deposit(LEASE).status == DepositStatus.DISPUTED

    def test_second_payout_built_from_same_view_is_rejected(self, held_registry):
        ledger = held_registry.ledger
        release = compute_release_to_landlord(ledger, TENANT, LEASE)
        refund = compute_return_to_tenant(ledger, LANDLORD, LEASE)

        assert ledger.execute(release) == ExecuteResult.APPLIED
        before = snapshot(ledger)
        with pytest.raises(InvalidStatus):
            ledger.execute_or_raise(refund)
        assert snapshot(ledger) == before
        assert ledger.balance_of(LANDLORD) == 11000
        assert ledger.balance_of(TENANT) == 9000

    def test_dispute_built_before_release_is_rejected(self, held_registry):
        ledger = held_registry.ledger
        dispute = compute_dispute(ledger, TENANT, LEASE)
        held_registry.return_to_tenant(LANDLORD, LEASE)

        assert ledger.execute(dispute) == ExecuteResult.REJECTED
        assert ledger.get_deposit(LEASE).status == DepositStatus.RELEASED

    def test_underfunded_custody_rejects_record_change_too(self, funded_ledger):
        """A payout that custody cannot cover leaves the record HELD."""
        deposit = Deposit("L9", TENANT, LANDLORD, 700)
        funded_ledger.deposits["L9"] = deposit  # record without custody funds
        before = snapshot(funded_ledger)

        pending = build_transaction(
            funded_ledger,
            [Move(700, "escrow", LANDLORD, "release_L9")],
            [DepositChange("L9", deposit, deposit.with_status(DepositStatus.RELEASED, 5))],
        )
        with pytest.raises(InsufficientFunds):
            funded_ledger.execute_or_raise(pending)
        assert snapshot(funded_ledger) == before
