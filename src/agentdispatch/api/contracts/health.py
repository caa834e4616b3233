"""Health check response model"""

from pydantic import BaseModel

from ...domain.domain_type import Domain


class HealthResponse(BaseModel):
    """API health check response"""

    status: str
    service: str
    domains: list[Domain] = []
