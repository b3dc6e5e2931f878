"""Data models for the ticket tracker adapter."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Ticket:
    """A tracked work item.

    Attributes:
        id: Tracker-internal ID used in mutations.
        identifier: Human readable key, e.g. "ABC-123".
        title: Ticket title.
        description: Ticket body, if any.
        team_id: Owning team; matches TenantConfig.linear_team_id.
        state_name: Workflow state at fetch time.
    """

    id: str
    identifier: str
    title: str
    description: str | None = None
    team_id: str | None = None
    state_name: str | None = None
