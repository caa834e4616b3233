"""API dependency wiring."""

from functools import lru_cache

from ..config import settings
from ..service import DispatchService, create_dispatch_service


@lru_cache(maxsize=1)
def get_dispatch_service() -> DispatchService:
    """
    Create dispatch service from settings (cached singleton).

    Service factory handles all construction logic - deps.py is just thin DI glue.
    """
    return create_dispatch_service(settings)
