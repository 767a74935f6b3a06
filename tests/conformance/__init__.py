"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the sale engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_supply_invariants.py - Allocation, phase supply and index monotonicity
2. test_atomicity.py - A rejected operation leaves no trace
3. test_conservation.py - Tokens and currency are only ever moved

These tests use hypothesis for property-based testing.
"""
