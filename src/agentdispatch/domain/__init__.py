"""Domain Layer - Query Dispatch Pipeline.

Routes a natural-language query to one domain, discovers that domain's tools,
lets a domain agent narrow the field, ranks the tools and executes the best
ones with retry and fallback.

Key Components:
    - QueryRouter: Deterministic lexicon-based domain classification
    - ToolCatalog: Cached, single-flight tool discovery per domain
    - DomainAgent: Tagged union of domain-bound interpreters
    - RelevanceScorer: Weighted-feature ranking with threshold qualification
    - Executor: Sequential retry/fallback state machine
    - ResponseAggregator: Uniform terminal results
    - QueryPipeline: Composition of all of the above

Design Principles:
    - Immutable by Default: value models use frozen=True
    - Explicit Dependencies: collaborators are passed in, never looked up
    - One Shared Slot: the catalog snapshot is the only cross-query state
      (plus the breaker's counters)
"""

from .agent import (
    CodeHostingAgent,
    DataStoreAgent,
    DomainAgent,
    Interpreter,
    ProjectManagementAgent,
    build_agent,
)
from .aggregator import ResponseAggregator
from .breaker import CircuitBreaker
from .catalog import ToolCatalog, ToolProvider
from .context import CancelToken, QueryContext
from .domain_type import Domain, EventKind, FailureKind, OutcomeKind, PipelineStage, ResultKind
from .domain_value import (
    AggregatedResult,
    AttemptRecord,
    CatalogSnapshot,
    DirectAnswer,
    ExecutionOutcome,
    Interpretation,
    ParamSpec,
    PipelineConfig,
    Query,
    QueryId,
    ScoredCandidate,
    ScoreRationale,
    ScoringWeights,
    StatusEvent,
    ToolDescriptor,
    ToolIntent,
)
from .errors import DiscoveryFailed, DispatchError, InterpretationFailed, QueryCanceled, ToolInvocationError
from .executor import Executor
from .pipeline import QueryPipeline
from .router import QueryRouter, RouteDecision
from .scorer import RelevanceScorer, ScoringProfile

__all__ = [
    "AggregatedResult",
    "AttemptRecord",
    "CancelToken",
    "CatalogSnapshot",
    "CircuitBreaker",
    "CodeHostingAgent",
    "DataStoreAgent",
    "DirectAnswer",
    "DiscoveryFailed",
    "DispatchError",
    "Domain",
    "DomainAgent",
    "EventKind",
    "ExecutionOutcome",
    "Executor",
    "FailureKind",
    "Interpretation",
    "InterpretationFailed",
    "Interpreter",
    "OutcomeKind",
    "ParamSpec",
    "PipelineConfig",
    "PipelineStage",
    "ProjectManagementAgent",
    "Query",
    "QueryCanceled",
    "QueryContext",
    "QueryId",
    "QueryPipeline",
    "QueryRouter",
    "RelevanceScorer",
    "ResponseAggregator",
    "ResultKind",
    "RouteDecision",
    "ScoreRationale",
    "ScoredCandidate",
    "ScoringProfile",
    "ScoringWeights",
    "StatusEvent",
    "ToolCatalog",
    "ToolDescriptor",
    "ToolIntent",
    "ToolInvocationError",
    "ToolProvider",
    "build_agent",
]
