"""Catalog API Router - inspect and invalidate per-domain tool snapshots."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from ...domain.domain_type import Domain
from ...domain.errors import DiscoveryFailed
from ...service import DispatchService
from ..contracts import CatalogResponse, ToolResponse
from ..deps import get_dispatch_service

router = APIRouter(prefix="/catalog", tags=["catalog"])


def _domain_or_404(name: str) -> Domain:
    try:
        return Domain(name)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown domain: {name}") from exc


@router.get("/{domain}", response_model=CatalogResponse)
async def get_catalog(
    domain: str,
    service: Annotated[DispatchService, Depends(get_dispatch_service)],
) -> CatalogResponse:
    """Current tools for a domain (refreshed first if the snapshot expired)."""
    resolved = _domain_or_404(domain)
    try:
        snapshot = await service.catalog.snapshot(resolved)
    except DiscoveryFailed as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return CatalogResponse(
        domain=resolved,
        fetched_at=snapshot.fetched_at,
        stale=service.catalog.is_stale(resolved),
        tools=[ToolResponse.from_descriptor(tool) for tool in snapshot.tools],
    )


@router.post("/{domain}/invalidate", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_catalog(
    domain: str,
    service: Annotated[DispatchService, Depends(get_dispatch_service)],
) -> None:
    """Force the next lookup to refresh this domain's tools."""
    service.catalog.invalidate(_domain_or_404(domain))
