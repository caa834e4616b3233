"""
Test suite for the agent dispatch pipeline.

Testing patterns:
- Domain logic tests against in-memory fakes (no network, no model)
- Deterministic routing and ranking with fixed clocks
- Failure paths: retry, fallback, breaker, stale catalog, cancellation
- Integration tests for the HTTP surface with the service overridden
"""
