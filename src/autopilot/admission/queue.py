"""AdmissionQueue - FIFO of pending tickets with de-duplication and bounded retry."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from autopilot.admission.models import QueuedTicket

if TYPE_CHECKING:
    from autopilot.config import TenantConfig
    from autopilot.tracker import Ticket

logger = logging.getLogger("autopilot.admission")


class AdmissionQueue:
    """In-memory queue of tickets waiting to be dispatched.

    Holds at most one entry per ticket identifier. Not thread-safe: every
    mutation happens on the orchestrator's event loop.
    """

    def __init__(self, max_retries: int = 3) -> None:
        """Initialize the queue.

        Args:
            max_retries: Attempts after which a requeued ticket is dropped.
        """
        self.max_retries = max_retries
        self._items: deque[QueuedTicket] = deque()

    def enqueue(self, ticket: Ticket, tenant: TenantConfig) -> bool:
        """Append a ticket unless it is already queued.

        Returns:
            True if the ticket was added, False if it was a duplicate.
        """
        if self._contains(ticket.identifier):
            logger.debug("Ticket %s already queued, ignoring", ticket.identifier)
            return False
        self._items.append(QueuedTicket(ticket=ticket, tenant=tenant))
        logger.info(
            "Queued %s for tenant %s (queue size %d)",
            ticket.identifier,
            tenant.name,
            len(self._items),
        )
        return True

    def peek(self) -> QueuedTicket | None:
        return self._items[0] if self._items else None

    def dequeue(self) -> QueuedTicket | None:
        return self._items.popleft() if self._items else None

    def requeue(self, item: QueuedTicket) -> bool:
        """Put a failed ticket back at the tail, or drop it once out of retries.

        Returns:
            True if the ticket was requeued, False if it was dropped.
        """
        item.attempts += 1
        if item.attempts >= self.max_retries:
            logger.warning(
                "Ticket %s reached max retries (%d), dropping",
                item.identifier,
                self.max_retries,
            )
            return False
        if self._contains(item.identifier):
            logger.debug("Ticket %s already queued, keeping existing entry", item.identifier)
            return False
        self._items.append(item)
        logger.info(
            "Requeued %s (attempt %d/%d)", item.identifier, item.attempts, self.max_retries
        )
        return True

    def size(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def get_all(self) -> list[QueuedTicket]:
        """Snapshot of queued tickets in FIFO order."""
        return list(self._items)

    def get_by_tenant(self, team_id: str) -> list[QueuedTicket]:
        return [item for item in self._items if item.tenant.linear_team_id == team_id]

    def clear(self) -> None:
        self._items.clear()

    def _contains(self, identifier: str) -> bool:
        return any(item.identifier == identifier for item in self._items)

    def __len__(self) -> int:
        return len(self._items)
