"""
Idempotency Conformance Tests

INVARIANT: Duplicate execution is detected and prevented.

    ∀ transaction T:
        execute(T) = APPLIED ⟹ execute(T) again = ALREADY_APPLIED
        state after second execute = state after first execute

This guarantees safe retry semantics and prevents a deposit from being
paid out twice by a resubmitted request.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from escrow import (
    Ledger, Move, ExecuteResult, build_transaction,
    compute_create_deposit, compute_release_to_landlord,
)

from tests.helpers import snapshot, TENANT, LANDLORD, LEASE


class TestIdempotencyProperties:
    """Property-based idempotency tests."""

    @given(st.integers(min_value=1, max_value=5))
    @settings(max_examples=50)
    def test_repeated_execution_always_idempotent(self, num_repeats):
        """
        PROPERTY: Executing the same transaction N times produces same result.
        """
        ledger = Ledger("test", verbose=False, test_mode=True)
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")
        ledger.set_balance("alice", 10000)

        tx = build_transaction(ledger, [Move(100, "alice", "bob", "payment")])

        results = [ledger.execute(tx) for _ in range(num_repeats + 1)]

        assert results[0] == ExecuteResult.APPLIED
        assert all(r == ExecuteResult.ALREADY_APPLIED for r in results[1:])
        assert ledger.get_balance("alice") == 9900
        assert ledger.get_balance("bob") == 100


class TestDepositIdempotency:

    def test_resubmitted_create_is_already_applied(self, funded_ledger):
        pending = compute_create_deposit(funded_ledger, TENANT, LEASE, LANDLORD, 1000)
        assert funded_ledger.execute(pending) == ExecuteResult.APPLIED
        before = snapshot(funded_ledger)

        assert funded_ledger.execute(pending) == ExecuteResult.ALREADY_APPLIED
        assert snapshot(funded_ledger) == before
        assert funded_ledger.balance_of(TENANT) == 9000

    def test_resubmitted_release_pays_once(self, held_registry):
        ledger = held_registry.ledger
        pending = compute_release_to_landlord(ledger, TENANT, LEASE)

        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.execute(pending) == ExecuteResult.ALREADY_APPLIED
        assert ledger.balance_of(LANDLORD) == 11000
        assert held_registry.escrow_balance() == 0

    def test_same_intent_from_different_heights(self, funded_ledger):
        """Build height is not part of the intent."""
        first = compute_create_deposit(funded_ledger, TENANT, LEASE, LANDLORD, 1000)
        funded_ledger.execute(first)
        funded_ledger.mine(5)
        rebuilt = build_transaction(
            funded_ledger, list(first.moves), list(first.deposit_changes), first.origin
        )
        assert rebuilt.height != first.height
        assert rebuilt.intent_id == first.intent_id
        assert funded_ledger.execute(rebuilt) == ExecuteResult.ALREADY_APPLIED
