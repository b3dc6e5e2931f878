"""Data models for the Orchestrator module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autopilot.config import TenantConfig
    from autopilot.tracker import Ticket


class AgentPhase(StrEnum):
    """Where a ticket is in its agent lifecycle."""

    QUEUED = "queued"
    SPAWNING = "spawning"
    RUNNING = "running"
    VALIDATING = "validating"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    NEEDS_ATTENTION = "needs_attention"
    FAILED = "failed"


@dataclass
class ActiveAgentRecord:
    """Bookkeeping for one running agent; its presence holds a tenant slot.

    Attributes:
        ticket: Ticket being worked on.
        tenant: Tenant the slot belongs to.
        started_at: When the slot was reserved.
        branch_name: Sanitized feature branch name.
        notified_stuck: Set once the stuck notification went out; never reset.
        phase: Current lifecycle phase.
    """

    ticket: Ticket
    tenant: TenantConfig
    started_at: datetime
    branch_name: str
    notified_stuck: bool = False
    phase: AgentPhase = AgentPhase.SPAWNING

    def elapsed_ms(self, now: datetime) -> int:
        return int((now - self.started_at).total_seconds() * 1000)


@dataclass
class OrchestratorStatus:
    """Snapshot of the orchestrator.

    Attributes:
        active: Number of running agents.
        queued: Number of tickets waiting.
        agents: Identifiers of tickets with running agents.
        running: Whether the periodic ticks are scheduled.
    """

    active: int
    queued: int
    agents: list[str] = field(default_factory=list)
    running: bool = False
