"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of savings rooms.

The tests are organized by invariant:
1. conservation.py - Currency supply and double-entry invariants
2. atomicity.py - Failed operations leave no trace
3. idempotency.py - Duplicate execution handling
4. weight.py - Room weight equals the sum of position deposit counts
5. settlement_properties.py - Claim-once, rounding dust bounds, deposit window rules

These tests use hypothesis for property-based testing.
"""
