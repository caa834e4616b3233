"""Executor - Retry/Fallback State Machine Over Ranked Candidates.

Runs the qualifying candidates of one query strictly in rank order, one
invocation at a time, until one succeeds or the chain is exhausted.

Attempt State Machine (per candidate):

    ATTEMPTING ──success──▶ SUCCEEDED (stop)
        │
        ├─transient (first try)──▶ RETRYING ──backoff──▶ ATTEMPTING
        ├─transient (retry)──────▶ FALLING_BACK ──▶ next candidate
        └─permanent──────────────▶ FALLING_BACK ──▶ next candidate

    no candidate left ──▶ EXHAUSTED (last failed outcome returned)

Classification:
    - per-attempt timeout: transient
    - ToolInvocationError: the kind it carries
    - anything else: provider.classify_error(exc)

The executor never lets a tool failure escape; the only exception that leaves
run() is QueryCanceled. Every finished run is reported to the circuit breaker
exactly once (success resets the domain's counter, failure increments it).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .breaker import CircuitBreaker
from .catalog import ToolCatalog, ToolProvider
from .context import QueryContext
from .domain_type import Domain, EventKind, FailureKind, OutcomeKind, PipelineStage
from .domain_value import AttemptRecord, ExecutionOutcome, ScoredCandidate
from .errors import QueryCanceled, ToolInvocationError

logger = structlog.get_logger()

MAX_ATTEMPTS_PER_TOOL = 2


def classify_error(exc: BaseException, provider: ToolProvider | None = None) -> FailureKind:
    """Failure class of an exception raised by a tool invocation."""
    if isinstance(exc, TimeoutError):
        return FailureKind.TRANSIENT
    if isinstance(exc, ToolInvocationError):
        return exc.kind
    if provider is not None:
        return provider.classify_error(exc)
    return FailureKind.PERMANENT


class _Attempt(BaseModel):
    outcome: OutcomeKind
    payload: Any = None
    error: str | None = None
    elapsed_ms: float = 0.0


class Executor(BaseModel):
    """Sequential invoker with one retry for transient failures.

    Attributes:
        catalog: Resolves which provider owns each tool
        breaker: Per-domain circuit breaker, checked before every attempt
        timeout: Per-invocation time limit in seconds
        backoff: Fixed delay before the single transient retry
    """

    catalog: ToolCatalog
    breaker: CircuitBreaker
    timeout: float = Field(default=30.0, gt=0)
    backoff: float = Field(default=0.5, ge=0.0)

    model_config = ConfigDict(frozen=True)

    async def run(self, candidates: Sequence[ScoredCandidate], domain: Domain, ctx: QueryContext) -> ExecutionOutcome:
        """Try candidates in rank order until one succeeds.

        Args:
            candidates: Qualifying candidates, best first
            domain: Domain every candidate belongs to
            ctx: Query context (cancellation and status events)

        Returns:
            The successful outcome, or the last failed outcome when exhausted

        Raises:
            QueryCanceled: Caller canceled before or during execution
        """
        chain = _distinct(candidates)
        log = logger.bind(query_id=str(ctx.query.id), domain=str(domain))
        attempts: list[AttemptRecord] = []
        last: ExecutionOutcome | None = None

        for index, candidate in enumerate(chain):
            if index > 0:
                ctx.emit(
                    EventKind.FALLING_BACK,
                    PipelineStage.EXECUTION,
                    f"Falling back to {candidate.name}",
                    tool=candidate.name,
                )

            for attempt_no in range(1, MAX_ATTEMPTS_PER_TOOL + 1):
                ctx.token.check()
                if self.breaker.is_open(domain):
                    ctx.emit(EventKind.SHORT_CIRCUITED, PipelineStage.EXECUTION, f"{domain} is unavailable")
                    log.warning("executor.breaker_open", attempts=len(attempts))
                    return ExecutionOutcome(
                        kind=OutcomeKind.FAILED_PERMANENT,
                        tool=last.tool if last else None,
                        summary=f"{domain} is temporarily unavailable",
                        attempts=tuple(attempts),
                        short_circuited=True,
                    )

                ctx.emit(
                    EventKind.ATTEMPTING,
                    PipelineStage.EXECUTION,
                    f"Calling {candidate.name}",
                    tool=candidate.name,
                    attempt=attempt_no,
                )
                result = await self._invoke(candidate, domain, ctx)
                attempts.append(
                    AttemptRecord(
                        tool=candidate.name,
                        attempt=attempt_no,
                        outcome=result.outcome,
                        error=result.error,
                        elapsed_ms=result.elapsed_ms,
                    )
                )

                if result.outcome is OutcomeKind.SUCCEEDED:
                    ctx.emit(
                        EventKind.SUCCEEDED,
                        PipelineStage.EXECUTION,
                        f"{candidate.name} succeeded",
                        tool=candidate.name,
                    )
                    self.breaker.record_success(domain)
                    log.info("executor.succeeded", tool=candidate.name, attempts=len(attempts))
                    return ExecutionOutcome(
                        kind=OutcomeKind.SUCCEEDED,
                        tool=candidate.name,
                        payload=result.payload,
                        attempts=tuple(attempts),
                    )

                ctx.emit(
                    EventKind.ATTEMPT_FAILED,
                    PipelineStage.EXECUTION,
                    result.error or "failed",
                    tool=candidate.name,
                    attempt=attempt_no,
                )
                log.info(
                    "executor.attempt_failed",
                    tool=candidate.name,
                    attempt=attempt_no,
                    outcome=str(result.outcome),
                    error=result.error,
                )
                last = ExecutionOutcome(
                    kind=result.outcome,
                    tool=candidate.name,
                    summary=result.error,
                    attempts=tuple(attempts),
                )

                if result.outcome is OutcomeKind.FAILED_TRANSIENT and attempt_no < MAX_ATTEMPTS_PER_TOOL:
                    ctx.emit(
                        EventKind.RETRYING,
                        PipelineStage.EXECUTION,
                        f"Retrying {candidate.name} in {self.backoff:g}s",
                        tool=candidate.name,
                        attempt=attempt_no + 1,
                    )
                    await ctx.token.sleep(self.backoff)
                    continue
                break

        ctx.emit(EventKind.EXHAUSTED, PipelineStage.EXECUTION, "Every candidate failed")
        self.breaker.record_failure(domain)
        log.warning("executor.exhausted", attempts=len(attempts))
        return last or ExecutionOutcome(kind=OutcomeKind.FAILED_PERMANENT, summary="No candidates to execute")

    async def _invoke(self, candidate: ScoredCandidate, domain: Domain, ctx: QueryContext) -> _Attempt:
        started = time.perf_counter()
        try:
            provider = self.catalog.provider_for(candidate.tool)
        except KeyError as exc:
            return _Attempt(outcome=OutcomeKind.FAILED_PERMANENT, error=str(exc.args[0]))

        try:
            payload = await ctx.token.guard(
                asyncio.wait_for(
                    provider.invoke_tool(candidate.name, domain, candidate.arguments, self.timeout),
                    timeout=self.timeout,
                )
            )
        except QueryCanceled:
            raise
        except TimeoutError:
            return _Attempt(
                outcome=OutcomeKind.FAILED_TRANSIENT,
                error=f"{candidate.name} timed out after {self.timeout:g}s",
                elapsed_ms=_elapsed_ms(started),
            )
        except Exception as exc:
            kind = classify_error(exc, provider)
            return _Attempt(
                outcome=OutcomeKind.from_failure(kind),
                error=str(exc) or type(exc).__name__,
                elapsed_ms=_elapsed_ms(started),
            )
        return _Attempt(outcome=OutcomeKind.SUCCEEDED, payload=payload, elapsed_ms=_elapsed_ms(started))


def _distinct(candidates: Sequence[ScoredCandidate]) -> list[ScoredCandidate]:
    """Candidates with repeated tool names removed, best rank kept."""
    seen: set[str] = set()
    chain: list[ScoredCandidate] = []
    for candidate in candidates:
        if candidate.name not in seen:
            seen.add(candidate.name)
            chain.append(candidate)
    return chain


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


__all__ = ["Executor", "MAX_ATTEMPTS_PER_TOOL", "classify_error"]
