"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Request

from autopilot.config import TenantRegistry
from autopilot.orchestrator import Orchestrator
from autopilot.services import Services
from autopilot.tracking import TrackingStore


def get_services(request: Request) -> Services:
    """Dependency that provides the services created by the lifespan."""
    services: Services | None = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized; the app lifespan has not run.")
    return services


ServicesDep = Annotated[Services, Depends(get_services)]


def get_orchestrator(services: ServicesDep) -> Orchestrator:
    return services.orchestrator


OrchestratorDep = Annotated[Orchestrator, Depends(get_orchestrator)]


def get_tracking_store(services: ServicesDep) -> TrackingStore:
    return services.tracking


TrackingStoreDep = Annotated[TrackingStore, Depends(get_tracking_store)]


def get_registry(services: ServicesDep) -> TenantRegistry:
    return services.registry


RegistryDep = Annotated[TenantRegistry, Depends(get_registry)]
