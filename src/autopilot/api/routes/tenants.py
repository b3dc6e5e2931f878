"""Tenant listing endpoint.

Async for the same reason as the status endpoints: slot counts are read on the loop.
"""

from fastapi import APIRouter

from autopilot.api.dependencies import OrchestratorDep, RegistryDep
from autopilot.api.models import APIResponse, TenantResponse

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.get("", response_model=APIResponse[list[TenantResponse]])
async def list_tenants(
    registry: RegistryDep,
    orchestrator: OrchestratorDep,
) -> APIResponse[list[TenantResponse]]:
    """List configured tenants with their current slot usage."""
    return APIResponse(
        data=[
            TenantResponse(
                name=t.name,
                team_id=t.linear_team_id,
                repo_path=t.repo_path,
                github_repo=t.github_repo,
                max_concurrent_agents=t.max_concurrent_agents,
                active_agents=orchestrator.get_active_count(t.linear_team_id),
            )
            for t in registry.all()
        ]
    )
