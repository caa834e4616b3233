from .catalog import CatalogResponse, ToolResponse
from .health import HealthResponse
from .query import (
    CancelResponse,
    QueryResultResponse,
    QueryStatusResponse,
    SubmitQueryRequest,
    SubmittedQueryResponse,
)

__all__ = [
    "CancelResponse",
    "CatalogResponse",
    "HealthResponse",
    "QueryResultResponse",
    "QueryStatusResponse",
    "SubmitQueryRequest",
    "SubmittedQueryResponse",
    "ToolResponse",
]
