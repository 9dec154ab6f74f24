"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the escrow ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Value is never created or destroyed; escrow custody
   always equals the sum of unreleased deposits
2. atomicity.py - All-or-nothing transaction semantics
3. idempotency.py - Duplicate execution handling
4. determinism.py - Reproducible behavior and replay

These tests use hypothesis for property-based testing.
"""
