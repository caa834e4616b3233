"""Unit tests for DispatchService.

The service is thin orchestration: each query runs as its own task behind a
semaphore, and its handle streams events and exposes cancel.
"""

import asyncio

import pytest
from pydantic import ValidationError

from agentdispatch.config import Settings
from agentdispatch.domain.domain_type import Domain, ResultKind
from agentdispatch.domain.domain_value import AggregatedResult, QueryId, StatusEvent, ToolIntent
from agentdispatch.domain.pipeline import QueryPipeline
from agentdispatch.service import DispatchService, create_dispatch_service
from tests.fakes import ScriptedInterpreter

PM = Domain.PROJECT_MANAGEMENT
QUERY = "create an issue in backend"


class ConcurrencyTracker(ScriptedInterpreter):
    """Interpreter that records how many calls overlap."""

    def __init__(self):
        super().__init__(ToolIntent())
        self.active = 0
        self.peak = 0

    async def interpret(self, query_text, descriptors, *, instructions=""):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.02)
            return await super().interpret(query_text, descriptors, instructions=instructions)
        finally:
            self.active -= 1


class ClosingProvider:
    """Provider stand-in that records what was still running when it closed."""

    def __init__(self):
        self.handle = None
        self.closed_with: list[tuple[bool, int]] = []

    async def aclose(self):
        self.closed_with.append((self.handle.done, len(self.handle._token.abandoned)))


def _service(catalog, config, interpreter=None, max_concurrent=8, **kwargs):
    pipeline = QueryPipeline.assemble(
        catalog=catalog,
        interpreter=interpreter or ScriptedInterpreter(ToolIntent()),
        config=config,
    )
    return DispatchService(pipeline=pipeline, max_concurrent=max_concurrent, **kwargs)


async def _drain(handle):
    return [item async for item in handle.events()]


# =============================================================================
# Submitting and Awaiting
# =============================================================================


class TestSubmit:
    """Test query submission."""

    @pytest.mark.asyncio
    async def test_run_query_returns_result(self, catalog, config):
        service = _service(catalog, config)

        result = await service.run_query(QUERY, domain_hint=PM)

        assert result.kind is ResultKind.TOOL_SUCCEEDED
        assert result.tool == "createIssue"

    @pytest.mark.asyncio
    async def test_events_stream_ends_with_result(self, catalog, config):
        service = _service(catalog, config)
        handle = service.submit_query(QUERY)

        items = [item async for item in handle.events()]

        assert all(isinstance(item, StatusEvent) for item in items[:-1])
        assert isinstance(items[-1], AggregatedResult)
        assert [e.sequence for e in items[:-1]] == list(range(len(items) - 1))
        assert handle.done

    @pytest.mark.asyncio
    async def test_events_replay_for_a_second_consumer(self, catalog, config):
        service = _service(catalog, config)
        handle = service.submit_query(QUERY)
        first = await _drain(handle)

        second = await asyncio.wait_for(_drain(handle), timeout=1.0)

        assert second == first
        assert isinstance(second[-1], AggregatedResult)

    @pytest.mark.asyncio
    async def test_concurrent_consumers_see_the_same_stream(self, catalog, config):
        service = _service(catalog, config, interpreter=ScriptedInterpreter(ToolIntent(), delay=0.02))
        handle = service.submit_query(QUERY)

        early, late = await asyncio.wait_for(asyncio.gather(_drain(handle), _drain(handle)), timeout=1.0)

        assert early == late
        assert [e.sequence for e in early[:-1]] == list(range(len(early) - 1))

    @pytest.mark.asyncio
    async def test_handles_addressable_by_id(self, catalog, config):
        service = _service(catalog, config)
        handle = service.submit_query(QUERY)
        await handle.result()

        assert service.get(handle.id) is handle
        assert service.get(QueryId()) is None

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, catalog, config):
        service = _service(catalog, config)

        with pytest.raises(ValidationError):
            service.submit_query("")


# =============================================================================
# Cancellation and Concurrency
# =============================================================================


class TestLifecycle:
    """Test cancel and the concurrency bound."""

    @pytest.mark.asyncio
    async def test_cancel_yields_canceled_result(self, catalog, config):
        service = _service(catalog, config, interpreter=ScriptedInterpreter(ToolIntent(), delay=0.5))
        handle = service.submit_query(QUERY)
        await asyncio.sleep(0.02)

        handle.cancel()
        result = await asyncio.wait_for(handle.result(), timeout=0.3)

        assert handle.canceled
        assert result.kind is ResultKind.CANCELED

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, catalog, config):
        tracker = ConcurrencyTracker()
        service = _service(catalog, config, interpreter=tracker, max_concurrent=1)

        handles = [service.submit_query(QUERY) for _ in range(3)]
        results = await asyncio.gather(*(h.result() for h in handles))

        assert tracker.peak == 1
        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_queries_run_concurrently_up_to_limit(self, catalog, config):
        tracker = ConcurrencyTracker()
        service = _service(catalog, config, interpreter=tracker, max_concurrent=3)

        await asyncio.gather(*(service.run_query(QUERY) for _ in range(3)))

        assert tracker.peak == 3

    @pytest.mark.asyncio
    async def test_aclose_cancels_running_queries(self, catalog, config):
        service = _service(catalog, config, interpreter=ScriptedInterpreter(ToolIntent(), delay=0.5))
        handle = service.submit_query(QUERY)
        await asyncio.sleep(0.02)

        await service.aclose()
        result = await asyncio.wait_for(handle.result(), timeout=0.3)

        assert result.kind is ResultKind.CANCELED

    @pytest.mark.asyncio
    async def test_aclose_drains_queries_before_closing_providers(self, catalog, config):
        provider = ClosingProvider()
        service = _service(
            catalog, config, interpreter=ScriptedInterpreter(ToolIntent(), delay=0.1), providers=[provider]
        )
        handle = service.submit_query(QUERY)
        provider.handle = handle
        await asyncio.sleep(0.02)

        await service.aclose()

        assert provider.closed_with == [(True, 0)]
        assert (await handle.result()).kind is ResultKind.CANCELED

    @pytest.mark.asyncio
    async def test_aclose_gives_up_after_shutdown_timeout(self, catalog, config):
        provider = ClosingProvider()
        service = _service(
            catalog,
            config,
            interpreter=ScriptedInterpreter(ToolIntent(), delay=5.0),
            providers=[provider],
            shutdown_timeout=0.05,
        )
        handle = service.submit_query(QUERY)
        provider.handle = handle
        await asyncio.sleep(0.02)

        await asyncio.wait_for(service.aclose(), timeout=1.0)

        assert handle.done
        assert len(provider.closed_with) == 1


# =============================================================================
# Factory
# =============================================================================


class TestFactory:
    """Test wiring from Settings."""

    @pytest.mark.asyncio
    async def test_one_provider_per_configured_domain(self, monkeypatch):
        monkeypatch.setenv("MCP_PROJECT_MANAGEMENT_URL", "http://pm.test/mcp")
        monkeypatch.setenv("LEXICON_DATA_STORE", "warehouse, ledger")
        settings = Settings()

        service = create_dispatch_service(settings)

        providers = service.catalog.providers(PM)
        assert [p.source_id for p in providers] == ["mcp:project-management"]
        assert service.catalog.providers(Domain.CODE_HOSTING) == ()
        assert "ledger" in service.pipeline.router.lexicons[Domain.DATA_STORE]
        assert service.pipeline.config.retry_backoff == 0.0
        await service.aclose()
