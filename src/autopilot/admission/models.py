"""Data models for the admission queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autopilot.config import TenantConfig
    from autopilot.tracker import Ticket


@dataclass
class QueuedTicket:
    """A ticket waiting for an agent slot.

    Attributes:
        ticket: The tracker ticket.
        tenant: Tenant the ticket belongs to.
        enqueued_at: When the ticket was first admitted.
        attempts: Failed runs so far; incremented on each requeue.
    """

    ticket: Ticket
    tenant: TenantConfig
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    attempts: int = 0

    @property
    def identifier(self) -> str:
        return self.ticket.identifier
