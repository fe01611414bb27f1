"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the sale ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Balances always sum to total_supply; lamports are never created
2. atomicity.py - A rejected instruction leaves the slot and every lamport untouched
3. idempotency.py - Which operations may be repeated, and what repeating them does
4. determinism.py - The same instructions produce the same bytes
5. canonicalization.py - One state, one encoding
6. temporal.py - Pre-sale and public-sale windows

These tests use hypothesis for property-based testing.
"""
