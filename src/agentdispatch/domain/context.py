"""Per-Query Context - Cancellation and Status Events.

Every query carries one QueryContext through the pipeline stages. It owns the
only per-query mutable state: the cancellation token, the bound domain and the
append-only list of emitted StatusEvents. Nothing in here is shared between
queries.

Cancellation Checkpoints:
    Stages call `token.check()` before discovery, before the model call,
    before every tool invocation and before each retry. Awaits that may take
    long (model calls, tool calls, retry backoff) go through `token.guard()` or
    `token.sleep()`. A cancel stops the query at once; a call already in
    flight is left to finish in the background and its result is discarded.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, PrivateAttr

from .domain_type import Domain, EventKind, PipelineStage
from .domain_value import Query, StatusEvent
from .errors import QueryCanceled

T = TypeVar("T")

EventSink = Callable[[StatusEvent], None]


class CancelToken(BaseModel):
    """One-shot cancellation flag for a single query."""

    _event: asyncio.Event = PrivateAttr(default_factory=asyncio.Event)
    _abandoned: set[asyncio.Future[object]] = PrivateAttr(default_factory=set)

    model_config = ConfigDict(frozen=True)

    @property
    def canceled(self) -> bool:
        return self._event.is_set()

    @property
    def abandoned(self) -> tuple[asyncio.Future[object], ...]:
        """In-flight work left running by a cancel and not finished yet."""
        return tuple(work for work in self._abandoned if not work.done())

    def cancel(self) -> None:
        self._event.set()

    def check(self) -> None:
        """Raise QueryCanceled if cancel() has been called."""
        if self._event.is_set():
            raise QueryCanceled("Query canceled by caller")

    async def sleep(self, delay: float) -> None:
        """Sleep for `delay` seconds unless canceled first."""
        self.check()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except TimeoutError:
            return
        raise QueryCanceled("Query canceled by caller")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable` unless the query is canceled first."""
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise QueryCanceled("Query canceled by caller")
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if self._event.is_set():
            # In-flight work is left to finish on its own; its result is dropped.
            self._abandoned.add(work)
            work.add_done_callback(self._abandoned.discard)
            work.add_done_callback(_discard)
            raise QueryCanceled("Query canceled by caller")
        return work.result()


def _discard(task: asyncio.Future[object]) -> None:
    if not task.cancelled():
        task.exception()


class QueryContext(BaseModel):
    """State carried between pipeline stages for one query.

    Attributes:
        query: The query being served
        token: Cancellation token shared with the caller's handle
        sink: Optional callback receiving every event as it is emitted
    """

    query: Query
    token: CancelToken
    sink: EventSink | None = None
    _events: list[StatusEvent] = PrivateAttr(default_factory=list)
    _domain: Domain | None = PrivateAttr(default=None)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def domain(self) -> Domain | None:
        return self._domain

    @property
    def events(self) -> tuple[StatusEvent, ...]:
        return tuple(self._events)

    def bind(self, domain: Domain) -> None:
        """Record the routed domain; later events carry it by default."""
        self._domain = domain

    def emit(
        self,
        kind: EventKind,
        stage: PipelineStage,
        message: str = "",
        *,
        tool: str | None = None,
        attempt: int | None = None,
    ) -> StatusEvent:
        """Append the next event in sequence and hand it to the sink."""
        event = StatusEvent(
            query_id=self.query.id,
            sequence=len(self._events),
            kind=kind,
            stage=stage,
            message=message,
            domain=self._domain,
            tool=tool,
            attempt=attempt,
        )
        self._events.append(event)
        if self.sink is not None:
            self.sink(event)
        return event


__all__ = ["CancelToken", "EventSink", "QueryContext"]
