"""Agent dispatch package exports."""

from .config import Settings, settings
from .domain import QueryPipeline
from .service import DispatchService

__all__ = [
    "DispatchService",
    "QueryPipeline",
    "Settings",
    "settings",
]
