"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the collateral engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - All-or-nothing operations, including collaborator effects
2. conservation.py - Custody matches positions, supply matches debt
3. solvency.py - No operation leaves a user below the minimum health factor
4. valuation.py - Fixed-point conversions and their rounding bounds
5. temporal.py - Staleness and event ordering against the logical clock
6. stateful.py - Random operation sequences preserving all of the above

These tests use hypothesis for property-based testing.
"""
