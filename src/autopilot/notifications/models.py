"""Data models for notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autopilot.config import TenantConfig
    from autopilot.tracker import Ticket


class EventType(str, Enum):
    """Lifecycle events that trigger notifications."""

    AGENT_STARTED = "agent_started"
    AGENT_COMPLETED = "agent_completed"
    AGENT_FAILED = "agent_failed"
    AGENT_STUCK = "agent_stuck"
    PR_CREATED = "pr_created"


@dataclass(frozen=True)
class NotificationEvent:
    """Something a tenant's channels should hear about.

    Attributes:
        type: Which lifecycle event this is.
        ticket: Ticket the agent is working on.
        tenant: Tenant whose channels receive the event.
        branch_name: Feature branch of the agent.
        timestamp: When the event happened.
        duration_ms: Session length, for AGENT_COMPLETED.
        error: Failure message, for AGENT_FAILED.
        attempt: Attempt number, for AGENT_FAILED.
        max_attempts: Configured maximum attempts, for AGENT_FAILED.
        pr_url: Pull request URL, for PR_CREATED.
        running_for_ms: Elapsed time, for AGENT_STUCK.
    """

    type: EventType
    ticket: Ticket
    tenant: TenantConfig
    branch_name: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    duration_ms: int | None = None
    error: str | None = None
    attempt: int | None = None
    max_attempts: int | None = None
    pr_url: str | None = None
    running_for_ms: int | None = None

    @classmethod
    def agent_started(
        cls, ticket: Ticket, tenant: TenantConfig, branch_name: str
    ) -> NotificationEvent:
        return cls(EventType.AGENT_STARTED, ticket, tenant, branch_name)

    @classmethod
    def agent_completed(
        cls, ticket: Ticket, tenant: TenantConfig, branch_name: str, duration_ms: int
    ) -> NotificationEvent:
        return cls(EventType.AGENT_COMPLETED, ticket, tenant, branch_name, duration_ms=duration_ms)

    @classmethod
    def agent_failed(
        cls,
        ticket: Ticket,
        tenant: TenantConfig,
        branch_name: str,
        error: str,
        attempt: int,
        max_attempts: int,
    ) -> NotificationEvent:
        return cls(
            EventType.AGENT_FAILED,
            ticket,
            tenant,
            branch_name,
            error=error,
            attempt=attempt,
            max_attempts=max_attempts,
        )

    @classmethod
    def agent_stuck(
        cls, ticket: Ticket, tenant: TenantConfig, branch_name: str, running_for_ms: int
    ) -> NotificationEvent:
        return cls(
            EventType.AGENT_STUCK, ticket, tenant, branch_name, running_for_ms=running_for_ms
        )

    @classmethod
    def pr_created(
        cls, ticket: Ticket, tenant: TenantConfig, branch_name: str, pr_url: str
    ) -> NotificationEvent:
        return cls(EventType.PR_CREATED, ticket, tenant, branch_name, pr_url=pr_url)
