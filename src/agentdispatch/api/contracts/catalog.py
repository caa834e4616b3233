"""Catalog API contracts."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ...domain.domain_type import Domain
from ...domain.domain_value import ParamSpec, ToolDescriptor


class ToolResponse(BaseModel):
    """One tool as advertised by a registry."""

    name: str
    description: str
    parameters: dict[str, ParamSpec]
    source: str

    @classmethod
    def from_descriptor(cls, tool: ToolDescriptor) -> ToolResponse:
        return cls(name=tool.name, description=tool.description, parameters=tool.parameters, source=tool.source)


class CatalogResponse(BaseModel):
    """Current catalog snapshot for a domain."""

    domain: Domain
    fetched_at: datetime
    stale: bool = Field(description="True when the last refresh failed and this snapshot was kept")
    tools: list[ToolResponse]
