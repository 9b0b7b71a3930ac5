"""
Property-based testing using Hypothesis.

This package contains property tests that verify mathematical invariants
hold across randomly generated inputs.

Modules:
    test_accumulator_properties: Merge algebra and trial splitting
    test_path_properties: Cholesky, replay, continuation and shift invariants
"""
