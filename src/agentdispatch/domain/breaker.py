"""Per-domain circuit breaker.

Counts consecutive permanent-or-exhausted executor failures per domain. Once
the count reaches the threshold the domain is open: queries short-circuit to
DOMAIN_UNAVAILABLE without discovery or execution until the cooldown elapses,
at which point the counter resets and traffic flows again.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .domain_type import Domain

logger = structlog.get_logger()


class _DomainState(BaseModel):
    failures: int = 0
    opened_at: float | None = None


class CircuitBreaker(BaseModel):
    """Consecutive-failure breaker keyed by domain.

    Same shape as the other infrastructure holders: configuration is frozen,
    the per-domain counters live in a private mutable dict.

    Attributes:
        threshold: Consecutive failures that open the breaker
        cooldown: Seconds the breaker stays open
        clock: Monotonic time source (injectable for tests)
    """

    threshold: int = Field(default=5, ge=1)
    cooldown: float = Field(default=60.0, ge=0.0)
    clock: Callable[[], float] = time.monotonic
    _states: dict[Domain, _DomainState] = PrivateAttr(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def _state(self, domain: Domain) -> _DomainState:
        return self._states.setdefault(domain, _DomainState())

    def is_open(self, domain: Domain) -> bool:
        state = self._state(domain)
        if state.opened_at is None:
            return False
        if self.clock() - state.opened_at >= self.cooldown:
            logger.info("breaker.reset", domain=str(domain), failures=state.failures)
            state.failures = 0
            state.opened_at = None
            return False
        return True

    def failures(self, domain: Domain) -> int:
        return self._state(domain).failures

    def record_success(self, domain: Domain) -> None:
        state = self._state(domain)
        state.failures = 0
        state.opened_at = None

    def record_failure(self, domain: Domain) -> None:
        state = self._state(domain)
        state.failures += 1
        if state.opened_at is None and state.failures >= self.threshold:
            state.opened_at = self.clock()
            logger.warning(
                "breaker.opened",
                domain=str(domain),
                failures=state.failures,
                cooldown=self.cooldown,
            )


__all__ = ["CircuitBreaker"]
