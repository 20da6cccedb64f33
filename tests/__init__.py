"""Test suite for formgate.

This package contains tests for:
- Form definition loading and shape checks
- Configuration and message resolution
- Session records and the in-memory store
- Field validation engine (every rule, every field kind)
- Lifecycle state machine (tokens, timing windows, recovery)
- Event system (emission, serialization)
- Request dispatch and end-to-end scenarios
"""
