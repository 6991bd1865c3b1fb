"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the revenue-share ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_conservation.py - Cash and reward conservation across random operation sequences
2. test_atomicity.py - Failed operations leave no trace
3. test_monotonicity.py - Counters and checkpoints that never move backwards

These tests use hypothesis for property-based testing.
"""
