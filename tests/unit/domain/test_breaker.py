"""Unit tests for CircuitBreaker."""

from agentdispatch.domain.breaker import CircuitBreaker
from agentdispatch.domain.domain_type import Domain

PM = Domain.PROJECT_MANAGEMENT


class TestCircuitBreaker:
    """Test opening, cooldown and reset."""

    def test_opens_at_threshold(self, monotonic):
        breaker = CircuitBreaker(threshold=3, cooldown=60, clock=monotonic)

        for _ in range(2):
            breaker.record_failure(PM)
        assert breaker.is_open(PM) is False

        breaker.record_failure(PM)
        assert breaker.is_open(PM) is True

    def test_success_resets_consecutive_count(self, monotonic):
        breaker = CircuitBreaker(threshold=3, clock=monotonic)
        breaker.record_failure(PM)
        breaker.record_failure(PM)

        breaker.record_success(PM)
        breaker.record_failure(PM)

        assert breaker.failures(PM) == 1
        assert breaker.is_open(PM) is False

    def test_closes_after_cooldown(self, monotonic):
        breaker = CircuitBreaker(threshold=1, cooldown=60, clock=monotonic)
        breaker.record_failure(PM)

        monotonic.advance(59)
        assert breaker.is_open(PM) is True

        monotonic.advance(1)
        assert breaker.is_open(PM) is False
        assert breaker.failures(PM) == 0

    def test_domains_are_independent(self, monotonic):
        breaker = CircuitBreaker(threshold=1, clock=monotonic)

        breaker.record_failure(PM)

        assert breaker.is_open(PM) is True
        assert breaker.is_open(Domain.CODE_HOSTING) is False
