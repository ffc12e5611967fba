"""
billsync HTTP API

The app factory creates a FastAPI instance with:
- Lifespan handler that bootstraps the provider catalog and runs the
  periodic refresh when enabled
- Domain error handlers
- Health endpoint at GET /api/health
- Bill, account, provider and user routers under /api/v1, each request
  counted against the per-client throttle
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import Depends, FastAPI

from billsync import __version__
from billsync.api.dependencies import enforce_request_limit
from billsync.api.errors import register_error_handlers
from billsync.api.routes import accounts, bills, providers, users
from billsync.orchestrator import AppComponents, create_app_components


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    components: AppComponents = app.state.components

    await components.bootstrap()
    logger.info("provider_catalog_ready", providers=components.providers.provider_ids)

    if components.settings.fetch.periodic_refresh_enabled:
        components.scheduler.start()

    yield

    await components.scheduler.stop()


def create_app(components: Optional[AppComponents] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        components: Pre-built components (tests inject their own).
            Defaults to create_app_components().
    """
    app = FastAPI(
        title="billsync API",
        description="Bill aggregation across linked provider accounts",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.components = components or create_app_components()

    register_error_handlers(app)

    throttled = [Depends(enforce_request_limit)]
    for router in (bills.router, accounts.router, providers.router, users.router):
        app.include_router(router, prefix="/api/v1", dependencies=throttled)

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy"}

    return app
