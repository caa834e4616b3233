"""Value Layer - Immutable Records Flowing Through the Dispatch Pipeline.

Every record here is a frozen Pydantic model. Stages never mutate what they
receive: they build new values (model_copy / constructors) and hand them on.

Records:
    - Query: what the caller asked, when, with an optional domain hint
    - ToolDescriptor / ParamSpec: one discoverable action and its parameters
    - CatalogSnapshot: complete, timestamped tool list for one domain
    - ScoredCandidate / ScoreRationale: one ranked tool for one query
    - DirectAnswer / ToolIntent: what the language model made of the query
    - AttemptRecord / ExecutionOutcome: what the executor did
    - AggregatedResult: the only record exposed across the public boundary
    - StatusEvent: ordered progress notifications for UI consumers
    - PipelineConfig / ScoringWeights: tuning constants
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, RootModel, model_validator

from .domain_type import Domain, EventKind, OutcomeKind, PipelineStage, ResultKind


def utc_now() -> datetime:
    return datetime.now(UTC)


class QueryId(RootModel[UUID]):
    """Unique Identifier for a Submitted Query.

    Strongly typed UUID that serializes as a plain string, so query ids
    cannot be mixed up with other UUIDs in signatures.
    """

    root: UUID = Field(default_factory=uuid4)
    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return str(self.root)


class Query(BaseModel):
    """Raw Request Text Plus Routing Hint.

    Attributes:
        id: Identity used to correlate status events and the final result
        text: The natural-language request, never empty
        created_at: Submission time (UTC)
        domain_hint: Caller-supplied domain; when present routing trusts it
    """

    id: QueryId = Field(default_factory=QueryId)
    text: str = Field(min_length=1, max_length=10_000)
    created_at: datetime = Field(default_factory=utc_now)
    domain_hint: Domain | None = None

    model_config = ConfigDict(frozen=True)


class ParamSpec(BaseModel):
    """One entry of a tool's parameter schema."""

    type: str = "string"
    required: bool = False
    description: str = ""

    model_config = ConfigDict(frozen=True)


class ToolDescriptor(BaseModel):
    """A Named, Parameterized Action Offered by a Registry.

    Descriptors are value objects whose identity is (name, domain): two
    registries advertising the same tool name in the same domain describe the
    same tool, whatever their descriptions say.

    Attributes:
        name: Unique within the domain (e.g. "createIssue", "LINEAR_LIST_ISSUES")
        description: Human-readable summary, also used for lexical scoring
        parameters: Parameter name → ParamSpec
        domain: Owning domain
        source: Identifier of the registry that advertised it
        primary: Registry marked this as a primary operation
    """

    name: str = Field(min_length=1)
    description: str = ""
    parameters: dict[str, ParamSpec] = Field(default_factory=dict)
    domain: Domain
    source: str = "unknown"
    primary: bool = False

    model_config = ConfigDict(frozen=True)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ToolDescriptor):
            return NotImplemented
        return (self.name, self.domain) == (other.name, other.domain)

    def __hash__(self) -> int:
        return hash((self.name, self.domain))

    @property
    def required_params(self) -> tuple[str, ...]:
        return tuple(name for name, spec in self.parameters.items() if spec.required)

    @classmethod
    def from_mcp(cls, raw: dict[str, Any], *, domain: Domain, source: str) -> ToolDescriptor:
        """Build a descriptor from an MCP `tools/list` entry.

        MCP advertises parameters as a JSON schema under `inputSchema`:
        `{"type": "object", "properties": {...}, "required": [...]}`. Missing
        names and descriptions get the same placeholders the registries
        themselves use.

        Example:
            >>> ToolDescriptor.from_mcp(
            ...     {"name": "createIssue", "inputSchema": {
            ...         "properties": {"title": {"type": "string"}},
            ...         "required": ["title"]}},
            ...     domain=Domain.PROJECT_MANAGEMENT, source="linear")
        """
        schema = raw.get("inputSchema") or {}
        properties = schema.get("properties") or {}
        required = set(schema.get("required") or ())
        parameters = {}
        for param_name, prop in properties.items():
            prop = prop if isinstance(prop, dict) else {}
            param_type = prop.get("type", "string")
            if isinstance(param_type, list):
                # ["string", "null"] style unions: first non-null member
                param_type = next((t for t in param_type if t != "null"), "string")
            parameters[param_name] = ParamSpec(
                type=str(param_type),
                required=param_name in required,
                description=str(prop.get("description", "")),
            )
        annotations = raw.get("annotations") or {}
        return cls(
            name=str(raw.get("name") or "unknown"),
            description=str(raw.get("description") or "No description"),
            parameters=parameters,
            domain=domain,
            source=source,
            primary=bool(annotations.get("primary", False)),
        )


class CatalogSnapshot(BaseModel):
    """Immutable, Complete Tool List for One Domain.

    A snapshot is produced whole by a refresh and replaced whole by the next
    one. Readers holding a snapshot keep a consistent view no matter how many
    refreshes happen meanwhile.
    """

    domain: Domain
    tools: tuple[ToolDescriptor, ...] = ()
    fetched_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(tool.name for tool in self.tools)

    def get(self, name: str) -> ToolDescriptor | None:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    def is_expired(self, ttl: timedelta, now: datetime) -> bool:
        return now - self.fetched_at >= ttl

    def __len__(self) -> int:
        return len(self.tools)


class ScoreRationale(BaseModel):
    """Machine-checkable explanation of a candidate's score.

    Attributes:
        lexical: Query/tool token overlap in [0, 1]
        parameters: Mean support for the required parameters in [0, 1]
        prior: 1.0 when the tool is a primary operation of its domain
        excluded: Tool fell outside the agent's named candidate set
        selected: Tool is one the agent named
        fired: Names of the features that contributed a nonzero value
        matched_terms: Canonical tokens shared by query and tool
    """

    lexical: float = Field(ge=0.0, le=1.0)
    parameters: float = Field(ge=0.0, le=1.0)
    prior: float = Field(ge=0.0, le=1.0)
    excluded: bool = False
    selected: bool = False
    fired: tuple[str, ...] = ()
    matched_terms: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def relevant(self) -> bool:
        """The query or the agent points at this tool, not just its shape."""
        return self.lexical > 0 or self.selected


class ScoredCandidate(BaseModel):
    """One tool ranked for one query. Produced fresh per query, never cached."""

    tool: ToolDescriptor
    score: float = Field(ge=0.0, le=1.0)
    rationale: ScoreRationale
    rank: int = Field(ge=1)
    arguments: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def name(self) -> str:
        return self.tool.name


class DirectAnswer(BaseModel):
    """The model answered without needing a tool."""

    text: str

    model_config = ConfigDict(frozen=True)


class ToolIntent(BaseModel):
    """The model wants a tool, optionally naming which ones.

    Attributes:
        candidate_names: Tools the model considers suitable; empty = no restriction
        arguments: Arguments the model extracted from the query
        fallback_answer: Text to show if no tool qualifies
    """

    candidate_names: tuple[str, ...] = ()
    arguments: dict[str, Any] = Field(default_factory=dict)
    fallback_answer: str | None = None

    model_config = ConfigDict(frozen=True)


Interpretation = DirectAnswer | ToolIntent


class AttemptRecord(BaseModel):
    """One invocation of one tool inside a query's fallback chain."""

    tool: str
    attempt: int = Field(ge=1)
    outcome: OutcomeKind
    error: str | None = None
    elapsed_ms: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(frozen=True)


class ExecutionOutcome(BaseModel):
    """Result of executing (or failing to execute) a query's tool chain.

    Attributes:
        kind: Succeeded, or the failure class of the last attempt
        tool: Tool whose result this is (None if nothing was invoked)
        payload: Opaque structured data returned by the tool provider
        summary: Optional human-readable summary
        attempts: Ordered trace of every invocation made for this query
        short_circuited: Chain stopped because the domain's breaker opened
    """

    kind: OutcomeKind
    tool: str | None = None
    payload: Any = None
    summary: str | None = None
    attempts: tuple[AttemptRecord, ...] = ()
    short_circuited: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCEEDED

    def attempts_for(self, tool: str) -> tuple[AttemptRecord, ...]:
        return tuple(a for a in self.attempts if a.tool == tool)


class AggregatedResult(BaseModel):
    """Uniform Terminal Record Returned to the Caller.

    Whatever happened inside the pipeline (direct answer, tool success, every
    candidate failing, cancellation) the caller receives exactly one of these.

    Attributes:
        query_id: Query this result answers
        kind: Terminal shape of the query
        domain: Domain the query was bound to (None when ambiguous)
        tool: Tool actually used, or None when answered directly
        success: Whether the caller got what they asked for
        display_text: Readable text, never a raw trace
        outcome: Raw execution outcome for diagnostics
    """

    query_id: QueryId | None = None
    kind: ResultKind
    domain: Domain | None = None
    tool: str | None = None
    success: bool
    display_text: str
    outcome: ExecutionOutcome | None = None

    model_config = ConfigDict(frozen=True)


class StatusEvent(BaseModel):
    """Progress notification emitted while a query moves through the pipeline.

    Sequence numbers are assigned by the pipeline in emission order, so a
    consumer can detect gaps but never sees events reordered.
    """

    query_id: QueryId
    sequence: int = Field(ge=0)
    kind: EventKind
    stage: PipelineStage
    message: str = ""
    domain: Domain | None = None
    tool: str | None = None
    attempt: int | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)


class ScoringWeights(BaseModel):
    """Fixed feature weights for the RelevanceScorer. Must sum to 1."""

    lexical: float = Field(default=0.5, ge=0.0, le=1.0)
    parameters: float = Field(default=0.3, ge=0.0, le=1.0)
    prior: float = Field(default=0.2, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def require_unit_sum(self) -> ScoringWeights:
        """Weighted sum of [0, 1] features must stay in [0, 1]."""
        total = self.lexical + self.parameters + self.prior
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"scoring weights must sum to 1.0, got {total}")
        return self


class PipelineConfig(BaseModel):
    """Tuning Constants for One Dispatch Pipeline.

    Projected from Settings so the domain layer never reads the environment.
    All durations are seconds.
    """

    catalog_ttl: float = Field(default=300.0, gt=0)
    catalog_retry_after: float = Field(default=30.0, ge=0.0)
    score_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    retry_backoff: float = Field(default=0.5, ge=0.0)
    execution_timeout: float = Field(default=30.0, gt=0)
    model_timeout: float = Field(default=60.0, gt=0)
    circuit_breaker_threshold: int = Field(default=5, ge=1)
    circuit_breaker_cooldown: float = Field(default=60.0, ge=0.0)
    routing_margin: float = Field(default=0.0, ge=0.0)
    default_domain: Domain | None = None
    max_concurrent_queries: int = Field(default=8, ge=1)
    weights: ScoringWeights = Field(default_factory=ScoringWeights)

    model_config = ConfigDict(frozen=True)

    @property
    def catalog_ttl_delta(self) -> timedelta:
        return timedelta(seconds=self.catalog_ttl)


__all__ = [
    "AggregatedResult",
    "AttemptRecord",
    "CatalogSnapshot",
    "DirectAnswer",
    "ExecutionOutcome",
    "Interpretation",
    "ParamSpec",
    "PipelineConfig",
    "Query",
    "QueryId",
    "ScoreRationale",
    "ScoredCandidate",
    "ScoringWeights",
    "StatusEvent",
    "ToolDescriptor",
    "ToolIntent",
    "utc_now",
]
