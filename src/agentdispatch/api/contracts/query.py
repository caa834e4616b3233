"""Query API contracts - use domain types directly."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ...domain.domain_type import Domain
from ...domain.domain_value import AggregatedResult, QueryId, StatusEvent


class SubmitQueryRequest(BaseModel):
    """Request to dispatch a natural-language query."""

    text: str = Field(
        min_length=1,
        max_length=10_000,
        description="Natural-language request",
        examples=["Create a new issue for the login bug"],
    )
    domain_hint: Domain | None = Field(
        default=None,
        description="Skip routing and send the query to this domain",
        examples=["project-management"],
    )
    wait: bool = Field(
        default=True,
        description="Wait for the result; when false, stream it from /queries/{id}/events",
        examples=[True],
    )


class SubmittedQueryResponse(BaseModel):
    """Response for a query accepted without waiting."""

    query_id: QueryId = Field(description="Id for events, status and cancel requests")


class QueryResultResponse(BaseModel):
    """Terminal result of a query plus the status events that led to it."""

    query_id: QueryId
    result: AggregatedResult
    events: list[StatusEvent] = Field(default_factory=list)


class QueryStatusResponse(BaseModel):
    """Progress of a submitted query."""

    query_id: QueryId
    done: bool
    canceled: bool
    result: AggregatedResult | None = None


class CancelResponse(BaseModel):
    """Acknowledgement of a cancel request."""

    query_id: QueryId
    canceled: bool
