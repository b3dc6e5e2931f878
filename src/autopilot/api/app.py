"""FastAPI application setup."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from autopilot.api.models import APIResponse
from autopilot.api.routes import history, status as status_routes, tenants, tickets
from autopilot.config import ConfigError, Settings, UnknownTenantError
from autopilot.services import Services, build_services
from autopilot.tracker import TicketNotFoundError, TrackerError
from autopilot.tracking import TrackingError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger("autopilot.api")

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    services: Services | None = app.state.services
    owns_services = services is None
    if services is None:
        services = build_services(app.state.settings)
        app.state.services = services
    services.orchestrator.start()

    yield
    # Shutdown
    timeout_ms = services.settings.shutdown_timeout_ms
    try:
        await asyncio.wait_for(services.orchestrator.shutdown(), timeout=timeout_ms / 1000)
    except TimeoutError:
        logger.warning(
            "Agents still running after %ds; exiting anyway: %s",
            timeout_ms // 1000,
            ", ".join(services.orchestrator.get_status().agents),
        )
    finally:
        if owns_services:
            services.close()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=APIResponse[None](data=None, error=message).model_dump(),
    )


def create_app(services: Services | None = None, settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Prebuilt services. When omitted they are built from settings on startup.
        settings: Settings used to build services; read from the environment when omitted.
    """
    app = FastAPI(
        title="Autopilot API",
        description="REST API for the ticket autopilot orchestrator",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store config for lifespan manager
    app.state.services = services
    app.state.settings = settings or (services.settings if services else Settings.from_env())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(UnknownTenantError)
    async def unknown_tenant_handler(_request: Request, exc: UnknownTenantError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(TicketNotFoundError)
    async def ticket_not_found_handler(
        _request: Request, exc: TicketNotFoundError
    ) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(TrackerError)
    async def tracker_error_handler(_request: Request, exc: TrackerError) -> JSONResponse:
        return _error(status.HTTP_502_BAD_GATEWAY, f"Tracker error: {exc}")

    @app.exception_handler(TrackingError)
    async def tracking_error_handler(_request: Request, exc: TrackingError) -> JSONResponse:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(ConfigError)
    async def config_error_handler(_request: Request, exc: ConfigError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    app.include_router(status_routes.router, prefix=API_PREFIX)
    app.include_router(tickets.router, prefix=API_PREFIX)
    app.include_router(tenants.router, prefix=API_PREFIX)
    app.include_router(history.router, prefix=API_PREFIX)

    return app
