"""Custom exceptions for the ticket tracker adapter."""


class TrackerError(Exception):
    """Base exception for ticket tracker errors."""


class TicketNotFoundError(TrackerError):
    """Ticket with given identifier does not exist."""


class StateNotFoundError(TrackerError):
    """Workflow state with given name does not exist for the team."""


class TrackerUpdateError(TrackerError):
    """Writing a ticket status or comment failed."""
