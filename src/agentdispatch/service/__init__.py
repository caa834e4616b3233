"""Service layer exports."""

from .dispatch import DispatchService, QueryHandle, create_dispatch_service

__all__ = ["DispatchService", "QueryHandle", "create_dispatch_service"]
