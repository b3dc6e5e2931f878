"""Pydantic models for REST API."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from autopilot.admission import QueuedTicket
    from autopilot.orchestrator import ActiveAgentRecord

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Standard API response wrapper."""

    data: T | None = None
    error: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    running: bool


class StatusResponse(BaseModel):
    """Response model for the orchestrator status."""

    model_config = ConfigDict(from_attributes=True)

    active: int
    queued: int
    agents: list[str]
    running: bool


class AgentResponse(BaseModel):
    """Response model for a running agent."""

    ticket: str
    title: str
    tenant: str
    branch_name: str
    phase: str
    started_at: datetime
    elapsed_ms: int
    notified_stuck: bool


def agent_to_response(record: ActiveAgentRecord, now: datetime) -> AgentResponse:
    """Convert an ActiveAgentRecord to AgentResponse."""
    return AgentResponse(
        ticket=record.ticket.identifier,
        title=record.ticket.title,
        tenant=record.tenant.name,
        branch_name=record.branch_name,
        phase=record.phase.value,
        started_at=record.started_at,
        elapsed_ms=record.elapsed_ms(now),
        notified_stuck=record.notified_stuck,
    )


class QueueItemResponse(BaseModel):
    """Response model for a queued ticket."""

    ticket: str
    title: str
    tenant: str
    enqueued_at: datetime
    attempts: int


def queue_item_to_response(item: QueuedTicket) -> QueueItemResponse:
    """Convert a QueuedTicket to QueueItemResponse."""
    return QueueItemResponse(
        ticket=item.ticket.identifier,
        title=item.ticket.title,
        tenant=item.tenant.name,
        enqueued_at=item.enqueued_at,
        attempts=item.attempts,
    )


class TicketAdmit(BaseModel):
    """Request model for admitting a ticket."""

    identifier: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Za-z0-9][\w\-]*$")
    tenant: str = Field(..., min_length=1, max_length=255)


class TicketAdmitResponse(BaseModel):
    ticket: str
    tenant: str
    queued: bool
    message: str


class CompletionResponse(BaseModel):
    """Response model for a completion record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_identifier: str
    ticket_title: str
    tenant: str
    success: bool
    duration_ms: int
    pr_url: str | None
    error: str | None
    created_at: datetime


def completion_to_response(completion: Any) -> CompletionResponse:
    """Convert a Completion model to CompletionResponse."""
    return CompletionResponse.model_validate(completion)


class CompletionStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    succeeded: int
    failed: int
    avg_duration_ms: float


class CostSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    runs: int
    input_tokens: int
    output_tokens: int
    estimated_cost: float


class TenantResponse(BaseModel):
    """Response model for a configured tenant."""

    name: str
    team_id: str
    repo_path: str
    github_repo: str
    max_concurrent_agents: int
    active_agents: int
