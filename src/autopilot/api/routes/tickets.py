"""Ticket admission endpoint."""

import asyncio

from fastapi import APIRouter, status

from autopilot.api.dependencies import ServicesDep
from autopilot.api.models import APIResponse, TicketAdmit, TicketAdmitResponse

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.post(
    "",
    response_model=APIResponse[TicketAdmitResponse],
    status_code=status.HTTP_202_ACCEPTED,
)
async def admit_ticket(
    body: TicketAdmit,
    services: ServicesDep,
) -> APIResponse[TicketAdmitResponse]:
    """Fetch a ticket from the tracker and queue it for an agent.

    Already queued or running tickets are accepted but not queued again.
    """
    tenant = services.registry.get(body.tenant)
    ticket = await asyncio.to_thread(services.fetch_ticket, body.identifier)
    queued = services.admit(ticket, tenant)
    message = "Queued" if queued else "Already queued or running"
    return APIResponse(
        data=TicketAdmitResponse(
            ticket=ticket.identifier,
            tenant=tenant.name,
            queued=queued,
            message=message,
        )
    )
