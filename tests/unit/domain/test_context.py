"""Unit tests for CancelToken and QueryContext."""

import asyncio

import pytest

from agentdispatch.domain.context import CancelToken, QueryContext
from agentdispatch.domain.domain_type import Domain, EventKind, PipelineStage
from agentdispatch.domain.domain_value import Query
from agentdispatch.domain.errors import QueryCanceled
from tests.fakes import make_context

# =============================================================================
# CancelToken
# =============================================================================


class TestCancelToken:
    """Test cancellation checkpoints."""

    def test_check_raises_after_cancel(self):
        token = CancelToken()
        token.check()

        token.cancel()

        assert token.canceled
        with pytest.raises(QueryCanceled):
            token.check()

    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        async def work():
            return 42

        assert await CancelToken().guard(work()) == 42

    @pytest.mark.asyncio
    async def test_guard_propagates_work_errors(self):
        async def work():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await CancelToken().guard(work())

    @pytest.mark.asyncio
    async def test_cancel_stops_waiting_but_lets_work_finish(self):
        """In-flight work completes in the background; its result is dropped."""
        token = CancelToken()
        finished = asyncio.Event()

        async def work():
            await asyncio.sleep(0.05)
            finished.set()
            return "late"

        asyncio.get_running_loop().call_later(0.01, token.cancel)
        with pytest.raises(QueryCanceled):
            await token.guard(work())

        assert not finished.is_set()
        assert len(token.abandoned) == 1
        await asyncio.wait_for(finished.wait(), timeout=1.0)
        await asyncio.sleep(0)
        assert token.abandoned == ()

    @pytest.mark.asyncio
    async def test_guard_on_canceled_token_never_starts_work(self):
        token = CancelToken()
        token.cancel()
        started = False

        async def work():
            nonlocal started
            started = True

        with pytest.raises(QueryCanceled):
            await token.guard(work())
        assert started is False

    @pytest.mark.asyncio
    async def test_sleep_interrupted_by_cancel(self):
        token = CancelToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)

        with pytest.raises(QueryCanceled):
            await asyncio.wait_for(token.sleep(10), timeout=1.0)

    @pytest.mark.asyncio
    async def test_sleep_completes_without_cancel(self):
        await CancelToken().sleep(0)


# =============================================================================
# QueryContext
# =============================================================================


class TestQueryContext:
    """Test ordered status events."""

    def test_events_numbered_in_emission_order(self):
        ctx = make_context("list issues")

        ctx.emit(EventKind.ROUTED, PipelineStage.ROUTING)
        ctx.emit(EventKind.DISCOVERED, PipelineStage.DISCOVERY)
        ctx.emit(EventKind.INTERPRETED, PipelineStage.INTERPRETATION)

        assert [e.sequence for e in ctx.events] == [0, 1, 2]
        assert all(e.query_id == ctx.query.id for e in ctx.events)

    def test_bound_domain_stamped_on_later_events(self):
        ctx = make_context("list issues")
        ctx.emit(EventKind.AMBIGUOUS, PipelineStage.ROUTING)

        ctx.bind(Domain.PROJECT_MANAGEMENT)
        ctx.emit(EventKind.ROUTED, PipelineStage.ROUTING)

        assert [e.domain for e in ctx.events] == [None, Domain.PROJECT_MANAGEMENT]
        assert ctx.domain is Domain.PROJECT_MANAGEMENT

    def test_sink_receives_each_event(self):
        received = []
        ctx = QueryContext(query=Query(text="list issues"), token=CancelToken(), sink=received.append)

        event = ctx.emit(EventKind.ROUTED, PipelineStage.ROUTING, "Routed", tool="x", attempt=1)

        assert received == [event]
        assert event.tool == "x"
        assert event.attempt == 1

    def test_events_snapshot_is_immutable(self):
        ctx = make_context("list issues")
        ctx.emit(EventKind.ROUTED, PipelineStage.ROUTING)

        events = ctx.events
        ctx.emit(EventKind.DISCOVERED, PipelineStage.DISCOVERY)

        assert len(events) == 1
        assert len(ctx.events) == 2
