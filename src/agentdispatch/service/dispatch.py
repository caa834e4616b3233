"""Thin orchestration service - runs queries through the pipeline as tasks."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import structlog

from ..clients.interpreter import PydanticAIInterpreter
from ..clients.mcp import McpToolProvider
from ..domain.catalog import ToolCatalog
from ..domain.context import CancelToken, QueryContext
from ..domain.domain_type import Domain
from ..domain.domain_value import AggregatedResult, Query, QueryId, StatusEvent
from ..domain.pipeline import QueryPipeline
from ..domain.router import QueryRouter, lexicons_from_mapping

if TYPE_CHECKING:
    from ..config import Settings

logger = structlog.get_logger()

RETAINED_HANDLES = 256
SHUTDOWN_TIMEOUT = 5.0

_DONE = object()


class QueryHandle:
    """Caller's view of one submitted query.

    `events()` yields every StatusEvent in emission order and finishes with
    the query's single AggregatedResult. Published items are kept, so every
    call replays from the first event: any number of consumers, early or late,
    see the same sequence.
    """

    def __init__(self, query: Query, token: CancelToken):
        self.query = query
        self._token = token
        self._items: list[StatusEvent | AggregatedResult | object] = []
        self._published = asyncio.Event()
        self._task: asyncio.Task[AggregatedResult] | None = None

    @property
    def id(self) -> QueryId:
        return self.query.id

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def canceled(self) -> bool:
        return self._token.canceled

    def cancel(self) -> None:
        """Request cancellation. The query still ends with a (canceled) result."""
        if not self._token.canceled:
            logger.info("dispatch.query.cancel_requested", query_id=str(self.id))
        self._token.cancel()

    async def result(self) -> AggregatedResult:
        if self._task is None:
            raise RuntimeError("Query has not been started")
        return await self._task

    async def events(self) -> AsyncIterator[StatusEvent | AggregatedResult]:
        index = 0
        while True:
            while index < len(self._items):
                item = self._items[index]
                index += 1
                if item is _DONE:
                    # The pipeline task failed unexpectedly; surface its exception.
                    await self.result()
                    return
                yield item  # type: ignore[misc]
                if isinstance(item, AggregatedResult):
                    return
            await self._published.wait()

    def _publish(self, item: StatusEvent | AggregatedResult | object) -> None:
        self._items.append(item)
        published, self._published = self._published, asyncio.Event()
        published.set()


class DispatchService:
    """
    Pure infrastructure orchestrator - zero business logic.

    Service responsibilities:
    1. Turn raw text into a Query and a QueryHandle
    2. Run each query as its own task, at most `max_concurrent` at a time
    3. Keep recent handles addressable by id (cancel, result lookup)

    The pipeline owns ALL dispatch logic.
    """

    def __init__(
        self,
        pipeline: QueryPipeline,
        max_concurrent: int = 8,
        providers: list[McpToolProvider] | None = None,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
    ):
        self.pipeline = pipeline
        self.providers = providers or []
        self.shutdown_timeout = shutdown_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._handles: OrderedDict[QueryId, QueryHandle] = OrderedDict()

    @property
    def catalog(self) -> ToolCatalog:
        return self.pipeline.catalog

    def submit_query(self, text: str, domain_hint: Domain | None = None) -> QueryHandle:
        """
        Start serving a query in the background.

        Args:
            text: Natural-language request
            domain_hint: Optional domain that bypasses routing

        Returns:
            Handle for streaming events, canceling and awaiting the result

        Raises:
            pydantic.ValidationError: If the text is empty or too long
        """
        query = Query(text=text, domain_hint=domain_hint)
        token = CancelToken()
        handle = QueryHandle(query, token)
        ctx = QueryContext(query=query, token=token, sink=handle._publish)
        handle._task = asyncio.create_task(self._serve(handle, ctx), name=f"query-{query.id}")
        self._remember(handle)
        logger.info("dispatch.query.submitted", query_id=str(query.id))
        return handle

    def get(self, query_id: QueryId) -> QueryHandle | None:
        return self._handles.get(query_id)

    async def run_query(self, text: str, domain_hint: Domain | None = None) -> AggregatedResult:
        """Submit and wait for the result."""
        return await self.submit_query(text, domain_hint).result()

    async def aclose(self) -> None:
        """Cancel running queries, wait for them to wind down, then close providers.

        Queries and tool calls left in flight by the cancel get up to
        `shutdown_timeout` seconds before they are cancelled outright.
        """
        running = [handle for handle in self._handles.values() if handle._task is not None and not handle.done]
        for handle in running:
            handle.cancel()

        if running:
            logger.info("dispatch.shutdown.draining", queries=len(running))
            try:
                async with asyncio.timeout(self.shutdown_timeout):
                    await asyncio.gather(*(handle._task for handle in running), return_exceptions=True)
                    # Calls the cancel abandoned mid-flight still hold provider connections.
                    abandoned = [work for handle in running for work in handle._token.abandoned]
                    await asyncio.gather(*abandoned, return_exceptions=True)
            except TimeoutError:
                logger.warning("dispatch.shutdown.timeout", queries=sum(1 for h in running if not h.done))

        for provider in self.providers:
            await provider.aclose()

    async def _serve(self, handle: QueryHandle, ctx: QueryContext) -> AggregatedResult:
        try:
            async with self._semaphore:
                result = await self.pipeline.run(ctx)
        except Exception:
            logger.exception("dispatch.query.crashed", query_id=str(handle.id))
            handle._publish(_DONE)
            raise
        handle._publish(result)
        return result

    def _remember(self, handle: QueryHandle) -> None:
        self._handles[handle.id] = handle
        while len(self._handles) > RETAINED_HANDLES:
            oldest_id, oldest = next(iter(self._handles.items()))
            if not oldest.done:
                break
            del self._handles[oldest_id]


def create_dispatch_service(settings: Settings) -> DispatchService:
    """
    Factory function for creating DispatchService.

    Service owns its own construction logic - deps.py just calls this.

    Args:
        settings: Application settings

    Returns:
        Configured DispatchService with one MCP provider per configured domain
    """
    config = settings.pipeline_config()
    catalog = ToolCatalog(ttl=config.catalog_ttl, retry_after=config.catalog_retry_after)

    providers: list[McpToolProvider] = []
    for domain, url in settings.mcp_endpoints().items():
        provider = McpToolProvider(
            domain,
            url,
            source_id=f"mcp:{domain}",
            api_key=settings.mcp_api_key,
            timeout=config.execution_timeout,
        )
        catalog.register(provider)
        providers.append(provider)

    router = QueryRouter(
        lexicons=lexicons_from_mapping(settings.extra_lexicon_terms()),
        margin=config.routing_margin,
    )
    pipeline = QueryPipeline.assemble(
        catalog=catalog,
        interpreter=PydanticAIInterpreter(model=settings.interpreter_model),
        config=config,
        router=router,
    )
    return DispatchService(pipeline=pipeline, max_concurrent=config.max_concurrent_queries, providers=providers)


__all__ = ["DispatchService", "QueryHandle", "create_dispatch_service"]
