"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, lifespan
wiring of the relay services, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.responses import Response

from src.relay.api.middleware.logging import LoggingMiddleware
from src.relay.api.v1.router import router as v1_router
from src.relay.core.logging import configure_structlog
from src.relay.core.monitoring import MetricsMiddleware, get_metrics_response
from src.relay.services import RelayServices, build_services, close_services

logger = structlog.get_logger(__name__)


def create_app(services: RelayServices | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Pre-built services (tests). When None, production
            services are built on startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan: build services on startup, release on shutdown."""
        configure_structlog()
        owned = services is None
        app.state.services = build_services() if owned else services
        logger.info(
            "relay.started",
            async_delivery=app.state.services.queue.is_async,
        )
        try:
            yield
        finally:
            if owned:
                await close_services(app.state.services)
            logger.info("relay.stopped")

    app = FastAPI(
        title="Relay API",
        version="0.1.0",
        description="Forwards membership and course events to Bento",
        lifespan=lifespan,
    )

    # Tests using ASGITransport skip the lifespan; expose services up front
    if services is not None:
        app.state.services = services

    # Middleware is added in reverse order (last added = outermost)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
