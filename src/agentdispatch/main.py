"""Agent Dispatch

FastAPI application exposing the query dispatch pipeline: submit a
natural-language request, stream its status events, cancel it, and inspect
the per-domain tool catalogs.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from .api.deps import get_dispatch_service
from .api.routers import catalog_router, health_router, query_router
from .config import settings
from .logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan - startup and shutdown logic"""
    configure_logging(settings.log_level, json=settings.log_json)
    logger.info("app.starting", name=settings.app_name, version=settings.app_version)
    yield
    logger.info("app.stopping")
    if get_dispatch_service.cache_info().currsize:
        await get_dispatch_service().aclose()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description=settings.app_description,
    version=settings.app_version,
    debug=settings.environment == "development",
    lifespan=lifespan,
)

# Add CORS middleware
if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins.split(","),
        allow_credentials=settings.cors_credentials,
        allow_methods=settings.cors_methods.split(","),
        allow_headers=settings.cors_headers.split(","),
    )

# Import and include routers
app.include_router(health_router)
app.include_router(query_router)
app.include_router(catalog_router)


@app.get("/")
async def root() -> RedirectResponse:
    """Redirect root to API docs"""
    return RedirectResponse(url="/docs")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
