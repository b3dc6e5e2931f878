"""Orchestrator status endpoints.

These handlers are async so they run on the event loop thread, the only
thread that reads or mutates orchestrator and queue state.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Query

from autopilot.api.dependencies import OrchestratorDep, ServicesDep
from autopilot.api.models import (
    AgentResponse,
    APIResponse,
    HealthResponse,
    QueueItemResponse,
    StatusResponse,
    agent_to_response,
    queue_item_to_response,
)

router = APIRouter(tags=["status"])


@router.get("/health", response_model=APIResponse[HealthResponse])
async def health(orchestrator: OrchestratorDep) -> APIResponse[HealthResponse]:
    """Liveness check."""
    return APIResponse(data=HealthResponse(running=orchestrator.running))


@router.get("/status", response_model=APIResponse[StatusResponse])
async def get_status(orchestrator: OrchestratorDep) -> APIResponse[StatusResponse]:
    """Get active and queued counts."""
    return APIResponse(data=StatusResponse.model_validate(orchestrator.get_status()))


@router.get("/agents", response_model=APIResponse[list[AgentResponse]])
async def list_agents(
    orchestrator: OrchestratorDep,
    tenant: str | None = Query(default=None, description="Filter by tenant name"),
) -> APIResponse[list[AgentResponse]]:
    """List running agents."""
    now = datetime.now(UTC)
    agents = [
        agent_to_response(record, now)
        for record in orchestrator.get_active_agents()
        if tenant is None or record.tenant.name == tenant
    ]
    return APIResponse(data=agents)


@router.get("/queue", response_model=APIResponse[list[QueueItemResponse]])
async def list_queue(services: ServicesDep) -> APIResponse[list[QueueItemResponse]]:
    """List tickets waiting for a slot, head first."""
    return APIResponse(data=[queue_item_to_response(item) for item in services.queue.get_all()])
