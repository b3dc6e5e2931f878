"""Completion history and cost endpoints."""

from fastapi import APIRouter, Query

from autopilot.api.dependencies import TrackingStoreDep
from autopilot.api.models import (
    APIResponse,
    CompletionResponse,
    CompletionStatsResponse,
    CostSummaryResponse,
    completion_to_response,
)

router = APIRouter(prefix="/history", tags=["history"])


@router.get("", response_model=APIResponse[list[CompletionResponse]])
def list_completions(
    store: TrackingStoreDep,
    tenant: str | None = Query(default=None, description="Filter by tenant name"),
    limit: int = Query(default=50, ge=1, le=1000, description="Max results"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
) -> APIResponse[list[CompletionResponse]]:
    """List completed lifecycles, newest first."""
    completions = store.list_completions(tenant=tenant, limit=limit, offset=offset)
    return APIResponse(data=[completion_to_response(c) for c in completions])


@router.get("/stats", response_model=APIResponse[CompletionStatsResponse])
def get_completion_stats(
    store: TrackingStoreDep,
    tenant: str | None = Query(default=None, description="Filter by tenant name"),
) -> APIResponse[CompletionStatsResponse]:
    """Get success and failure counts."""
    stats = store.get_completion_stats(tenant=tenant)
    return APIResponse(data=CompletionStatsResponse.model_validate(stats))


@router.get("/costs", response_model=APIResponse[CostSummaryResponse])
def get_costs(
    store: TrackingStoreDep,
    tenant: str | None = Query(default=None, description="Filter by tenant name"),
) -> APIResponse[CostSummaryResponse]:
    """Get token usage and estimated cost totals."""
    summary = store.get_cost_summary(tenant=tenant)
    return APIResponse(data=CostSummaryResponse.model_validate(summary))
