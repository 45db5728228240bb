"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the engine.

The tests are organized by invariant:
1. atomicity.py - Failed operations leave ledgers and collaborators untouched
2. solvency_properties.py - Custody backing, debt supply and health after every operation
3. price_conversion.py - Monotonic, truncating USD conversions

These tests use hypothesis for property-based testing.
"""
