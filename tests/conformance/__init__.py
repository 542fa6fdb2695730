"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the trading engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - No asset is created or destroyed by any operation
2. single_resolution.py - Every offer leaves pending exactly once
3. atomicity.py - Failed operations change nothing
4. tamper.py - Edited persisted offers are never settled
5. expiry.py - Escrow deadlines and sweep idempotence
6. concurrency.py - Racing operations on one offer
7. rate_limiting.py - Throttling of trade actions

These tests use hypothesis for property-based testing.
"""
