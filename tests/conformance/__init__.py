"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the custody contracts and the
chain they run on. Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Ledger balances stay covered; native value is conserved
2. atomicity.py - Failed operations leave no trace but a consumed nonce
3. authorization.py - Owner-only withdrawal and relay attribution
4. determinism.py - Identical inputs, identical hashes and state
5. reentrancy.py - Probe-call re-entry cannot double-spend

These tests use hypothesis for property-based testing.
"""
