"""Query API Router - thin HTTP layer over the dispatch service."""

from collections.abc import AsyncIterator
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from ...domain.domain_value import AggregatedResult, QueryId, StatusEvent
from ...service import DispatchService, QueryHandle
from ..contracts import (
    CancelResponse,
    QueryResultResponse,
    QueryStatusResponse,
    SubmitQueryRequest,
    SubmittedQueryResponse,
)
from ..deps import get_dispatch_service

router = APIRouter(prefix="/queries", tags=["queries"])


def _handle_or_404(service: DispatchService, query_id: UUID) -> QueryHandle:
    handle = service.get(QueryId(root=query_id))
    if handle is None:
        raise HTTPException(status_code=404, detail="Query not found")
    return handle


@router.post("/", response_model=QueryResultResponse | SubmittedQueryResponse)
async def submit_query(
    request: SubmitQueryRequest,
    service: Annotated[DispatchService, Depends(get_dispatch_service)],
) -> QueryResultResponse | SubmittedQueryResponse:
    """
    Dispatch a query.

    With `wait` (default) the call returns the terminal result and the status
    events that led to it. Without it the query keeps running in the
    background and its events can be streamed from `/queries/{id}/events`.
    """
    handle = service.submit_query(request.text, request.domain_hint)
    if not request.wait:
        return SubmittedQueryResponse(query_id=handle.id)

    events: list[StatusEvent] = []
    result: AggregatedResult | None = None
    async for item in handle.events():
        if isinstance(item, AggregatedResult):
            result = item
        else:
            events.append(item)
    if result is None:
        result = await handle.result()
    return QueryResultResponse(query_id=handle.id, result=result, events=events)


@router.get("/{query_id}", response_model=QueryStatusResponse)
async def get_query(
    query_id: UUID,
    service: Annotated[DispatchService, Depends(get_dispatch_service)],
) -> QueryStatusResponse:
    """Query progress; carries the result once it is done."""
    handle = _handle_or_404(service, query_id)
    result = await handle.result() if handle.done else None
    return QueryStatusResponse(query_id=handle.id, done=handle.done, canceled=handle.canceled, result=result)


@router.get("/{query_id}/events")
async def stream_events(
    query_id: UUID,
    service: Annotated[DispatchService, Depends(get_dispatch_service)],
) -> StreamingResponse:
    """Server-sent events: one `status` event per StatusEvent, then one `result`."""
    handle = _handle_or_404(service, query_id)

    async def frames() -> AsyncIterator[str]:
        async for item in handle.events():
            name = "result" if isinstance(item, AggregatedResult) else "status"
            yield f"event: {name}\ndata: {item.model_dump_json()}\n\n"

    return StreamingResponse(frames(), media_type="text/event-stream")


@router.post("/{query_id}/cancel", response_model=CancelResponse, status_code=status.HTTP_202_ACCEPTED)
async def cancel_query(
    query_id: UUID,
    service: Annotated[DispatchService, Depends(get_dispatch_service)],
) -> CancelResponse:
    """Request cancellation; the query still finishes with a canceled result."""
    handle = _handle_or_404(service, query_id)
    if not handle.done:
        handle.cancel()
    return CancelResponse(query_id=handle.id, canceled=handle.canceled)
