"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the migration program.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Supply and cap accounting
2. atomicity.py - All-or-nothing transitions
3. determinism.py - Reproducible behavior
4. temporal.py - Window bounds and one-way finalization
5. concurrency.py - Cap safety under concurrent redemptions

These tests use hypothesis for property-based testing.
"""
