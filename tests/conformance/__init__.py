"""
Conformance Test Suite

Property-based and example tests for the engine-wide invariants:
1. test_atomicity.py - Operations are all-or-nothing
2. test_solvency.py - No committed operation leaves its actor under-collateralized,
   and debt outstanding always matches the debt token supply
3. test_reentrancy.py - Mutating operations never interleave
"""
