"""Domain Type System - Core Enumerations.

Defines type-safe constants using Python's StrEnum for domain concepts.
Using StrEnum instead of plain Enum provides automatic string coercion
and better JSON serialization without custom encoders.
"""

from __future__ import annotations

from enum import StrEnum


class Domain(StrEnum):
    """Categories of External Capability.

    Each domain owns one ToolCatalog, one lexicon in the QueryRouter and one
    concrete agent. Values double as the wire identifiers used in API requests
    and in the `<DOMAIN>_MCP_URL` configuration keys.

    Note:
        Adding a domain requires a lexicon entry in router.py and an agent
        variant in agent.py (build_agent matches exhaustively).
    """

    PROJECT_MANAGEMENT = "project-management"
    CODE_HOSTING = "code-hosting"
    DATA_STORE = "data-store"


class FailureKind(StrEnum):
    """Classification of a failed tool invocation.

    TRANSIENT failures (network, timeout, rate limit) earn one retry of the same
    candidate. PERMANENT failures (validation, authorization, not found) move
    straight to the next candidate.
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"


class OutcomeKind(StrEnum):
    """Outcome of executing a tool (or attempting to)."""

    SUCCEEDED = "succeeded"
    FAILED_TRANSIENT = "failed_transient"
    FAILED_PERMANENT = "failed_permanent"

    @classmethod
    def from_failure(cls, kind: FailureKind) -> OutcomeKind:
        if kind is FailureKind.TRANSIENT:
            return cls.FAILED_TRANSIENT
        return cls.FAILED_PERMANENT


class ResultKind(StrEnum):
    """Terminal shape of a query, as seen by the caller.

    States:
        ANSWERED: Agent answered directly, no tool used
        TOOL_SUCCEEDED: A ranked candidate ran successfully
        TOOL_FAILED: Every qualifying candidate failed
        NO_QUALIFYING_TOOL: Nothing ranked above threshold and no direct answer
        AMBIGUOUS: Router could not pick a domain
        DISCOVERY_FAILED: Catalog unavailable and nothing cached
        DOMAIN_UNAVAILABLE: Circuit breaker open for the domain
        INTERPRETATION_FAILED: Language model call failed or timed out
        CANCELED: Caller canceled the query
    """

    ANSWERED = "answered"
    TOOL_SUCCEEDED = "tool_succeeded"
    TOOL_FAILED = "tool_failed"
    NO_QUALIFYING_TOOL = "no_qualifying_tool"
    AMBIGUOUS = "ambiguous"
    DISCOVERY_FAILED = "discovery_failed"
    DOMAIN_UNAVAILABLE = "domain_unavailable"
    INTERPRETATION_FAILED = "interpretation_failed"
    CANCELED = "canceled"


class PipelineStage(StrEnum):
    """Stage of the query pipeline that produced a status event."""

    ROUTING = "routing"
    DISCOVERY = "discovery"
    INTERPRETATION = "interpretation"
    SCORING = "scoring"
    EXECUTION = "execution"
    AGGREGATION = "aggregation"


class EventKind(StrEnum):
    """Status event vocabulary surfaced to UI consumers.

    Execution events follow the attempt state machine:
        ATTEMPTING → RETRYING → FALLING_BACK → EXHAUSTED | SUCCEEDED
    """

    ROUTED = "routed"
    AMBIGUOUS = "ambiguous"
    SHORT_CIRCUITED = "short_circuited"
    DISCOVERED = "discovered"
    DISCOVERY_FAILED = "discovery_failed"
    INTERPRETED = "interpreted"
    INTERPRETATION_FAILED = "interpretation_failed"
    RANKED = "ranked"
    ATTEMPTING = "attempting"
    ATTEMPT_FAILED = "attempt_failed"
    RETRYING = "retrying"
    FALLING_BACK = "falling_back"
    EXHAUSTED = "exhausted"
    SUCCEEDED = "succeeded"
    CANCELED = "canceled"


__all__ = [
    "Domain",
    "EventKind",
    "FailureKind",
    "OutcomeKind",
    "PipelineStage",
    "ResultKind",
]
