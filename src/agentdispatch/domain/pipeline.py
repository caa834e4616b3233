"""Query Pipeline - Routing, Discovery, Interpretation, Scoring, Execution.

Composes the leaf components into the end-to-end path a single query takes:

    Query
      │
      ▼
    QueryRouter.route()          → Domain | Ambiguous
      │   (breaker open?         → DomainUnavailable, no discovery)
      ▼
    ToolCatalog.snapshot()       → CatalogSnapshot | DiscoveryFailed
      ▼
    Agent.interpret()            → DirectAnswer | ToolIntent | InterpretationFailed
      ▼
    RelevanceScorer.rank()       → ranked candidates → qualifying prefix
      ▼
    Executor.run()               → ExecutionOutcome
      ▼
    ResponseAggregator           → AggregatedResult

Every exit path, including cancellation, ends in exactly one AggregatedResult.
Progress is reported through the QueryContext as ordered StatusEvents.

The pipeline itself holds no per-query state; one instance serves all
concurrent queries. Agents are built lazily, one per domain, and cached.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel, ConfigDict, PrivateAttr

from .agent import DomainAgent, Interpreter, build_agent
from .aggregator import ResponseAggregator
from .breaker import CircuitBreaker
from .catalog import ToolCatalog
from .context import QueryContext
from .domain_type import Domain, EventKind, PipelineStage
from .domain_value import AggregatedResult, DirectAnswer, PipelineConfig
from .errors import DiscoveryFailed, InterpretationFailed, QueryCanceled
from .executor import Executor
from .router import QueryRouter
from .scorer import RelevanceScorer

logger = structlog.get_logger()


class QueryPipeline(BaseModel):
    """End-to-end dispatch of one query at a time (many may run concurrently).

    Attributes:
        router: Domain classifier
        catalog: Shared per-domain tool snapshot cache
        scorer: Candidate ranking
        executor: Retry/fallback runner
        aggregator: Terminal result builder
        breaker: Per-domain circuit breaker (shared with the executor)
        interpreter: Language-model capability handed to agents
        config: Tuning constants
    """

    router: QueryRouter
    catalog: ToolCatalog
    scorer: RelevanceScorer
    executor: Executor
    aggregator: ResponseAggregator
    breaker: CircuitBreaker
    interpreter: Interpreter
    config: PipelineConfig
    _agents: dict[Domain, DomainAgent] = PrivateAttr(default_factory=dict)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @classmethod
    def assemble(
        cls,
        catalog: ToolCatalog,
        interpreter: Interpreter,
        config: PipelineConfig | None = None,
        router: QueryRouter | None = None,
    ) -> QueryPipeline:
        """Wire the standard components from a PipelineConfig."""
        config = config or PipelineConfig()
        breaker = CircuitBreaker(
            threshold=config.circuit_breaker_threshold,
            cooldown=config.circuit_breaker_cooldown,
        )
        return cls(
            router=router or QueryRouter(margin=config.routing_margin),
            catalog=catalog,
            scorer=RelevanceScorer(weights=config.weights, threshold=config.score_threshold),
            executor=Executor(
                catalog=catalog,
                breaker=breaker,
                timeout=config.execution_timeout,
                backoff=config.retry_backoff,
            ),
            aggregator=ResponseAggregator(),
            breaker=breaker,
            interpreter=interpreter,
            config=config,
        )

    def agent_for(self, domain: Domain) -> DomainAgent:
        """Domain agent (cached)."""
        agent = self._agents.get(domain)
        if agent is None:
            agent = build_agent(domain)
            self._agents[domain] = agent
        return agent

    async def run(self, ctx: QueryContext) -> AggregatedResult:
        """Serve one query. Never raises for pipeline failures.

        Returns:
            The single terminal result for ctx.query
        """
        log = logger.bind(query_id=str(ctx.query.id))
        log.info("pipeline.query.started", hint=str(ctx.query.domain_hint) if ctx.query.domain_hint else None)
        try:
            result = await self._run(ctx)
        except QueryCanceled:
            ctx.emit(EventKind.CANCELED, PipelineStage.AGGREGATION, "Query canceled")
            result = self.aggregator.canceled(ctx.domain, ctx.query.id)
        log.info(
            "pipeline.query.completed",
            kind=str(result.kind),
            domain=str(result.domain) if result.domain else None,
            tool=result.tool,
            success=result.success,
            events=len(ctx.events),
        )
        return result

    async def _run(self, ctx: QueryContext) -> AggregatedResult:
        query = ctx.query

        # Routing
        decision = self.router.route(query)
        domain = decision.domain
        if domain is None:
            if self.config.default_domain is None:
                ctx.emit(EventKind.AMBIGUOUS, PipelineStage.ROUTING, f"Could not choose a domain ({decision.reason})")
                return self.aggregator.ambiguous(query.id)
            domain = self.config.default_domain
            ctx.bind(domain)
            ctx.emit(EventKind.ROUTED, PipelineStage.ROUTING, f"Ambiguous request, using default domain {domain}")
        else:
            ctx.bind(domain)
            ctx.emit(EventKind.ROUTED, PipelineStage.ROUTING, f"Routed to {domain} ({decision.reason})")

        if self.breaker.is_open(domain):
            ctx.emit(EventKind.SHORT_CIRCUITED, PipelineStage.ROUTING, f"{domain} is temporarily unavailable")
            return self.aggregator.domain_unavailable(domain, query.id)

        # Discovery
        ctx.token.check()
        try:
            snapshot = await ctx.token.guard(self.catalog.snapshot(domain))
        except DiscoveryFailed as exc:
            ctx.emit(EventKind.DISCOVERY_FAILED, PipelineStage.DISCOVERY, exc.reason)
            return self.aggregator.discovery_failed(domain, query.id)
        stale = " (stale)" if self.catalog.is_stale(domain) else ""
        ctx.emit(EventKind.DISCOVERED, PipelineStage.DISCOVERY, f"{len(snapshot)} tools available{stale}")

        # Interpretation
        ctx.token.check()
        agent = self.agent_for(domain)
        try:
            interpretation = await ctx.token.guard(
                agent.interpret(query, snapshot, self.interpreter, self.config.model_timeout)
            )
        except InterpretationFailed as exc:
            ctx.emit(EventKind.INTERPRETATION_FAILED, PipelineStage.INTERPRETATION, str(exc))
            return self.aggregator.interpretation_failed(domain, str(exc), query.id)

        if isinstance(interpretation, DirectAnswer):
            ctx.emit(EventKind.INTERPRETED, PipelineStage.INTERPRETATION, "Answered directly")
            return self.aggregator.normalize(interpretation, domain, query.id)

        named = ", ".join(interpretation.candidate_names) or "any tool"
        ctx.emit(EventKind.INTERPRETED, PipelineStage.INTERPRETATION, f"Tool needed: {named}")

        # Scoring
        ranked = self.scorer.rank(
            query,
            snapshot,
            restriction=interpretation.candidate_names,
            arguments=interpretation.arguments,
            profile=agent.profile,
        )
        qualifying = self.scorer.qualifying(ranked)
        if not qualifying:
            ctx.emit(EventKind.RANKED, PipelineStage.SCORING, "No tool qualified")
            return self.aggregator.no_qualifying_tool(
                domain, snapshot.names, interpretation.fallback_answer, query.id
            )
        best = qualifying[0]
        ctx.emit(
            EventKind.RANKED,
            PipelineStage.SCORING,
            f"{len(qualifying)} qualifying, best {best.name} ({best.score:.2f})",
            tool=best.name,
        )

        # Execution
        outcome = await self.executor.run(qualifying, domain, ctx)
        return self.aggregator.normalize(outcome, domain, query.id)


__all__ = ["QueryPipeline"]
