"""Health check router

Endpoints:
- GET /health: Service health status and the domains with a tool registry
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from ...api.contracts import HealthResponse
from ...config import settings
from ...domain.domain_type import Domain
from ...service import DispatchService
from ..deps import get_dispatch_service

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    service: Annotated[DispatchService, Depends(get_dispatch_service)],
) -> HealthResponse:
    """API health check"""
    domains = [domain for domain in Domain if service.catalog.providers(domain)]
    return HealthResponse(status="healthy", service=settings.app_name, domains=domains)
