"""LinearTracker - Reads tickets and updates their state through Linear's GraphQL API."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from autopilot.tracker.exceptions import (
    StateNotFoundError,
    TicketNotFoundError,
    TrackerError,
    TrackerUpdateError,
)
from autopilot.tracker.models import Ticket

logger = logging.getLogger("autopilot.tracker")

LINEAR_GRAPHQL_URL = "https://api.linear.app/graphql"

_ISSUE_QUERY = """
query GetIssue($id: String!) {
    issue(id: $id) {
        id
        identifier
        title
        description
        state { id name }
        team { id name }
    }
}
"""

_STATES_QUERY = """
query GetStates($teamId: String!) {
    team(id: $teamId) {
        states { nodes { id name } }
    }
}
"""

_UPDATE_STATE_MUTATION = """
mutation UpdateIssue($id: String!, $stateId: String!) {
    issueUpdate(id: $id, input: { stateId: $stateId }) {
        success
    }
}
"""

_COMMENT_MUTATION = """
mutation CreateComment($issueId: String!, $body: String!) {
    commentCreate(input: { issueId: $issueId, body: $body }) {
        success
    }
}
"""


@dataclass
class _StateCacheEntry:
    states: dict[str, str]
    fetched_at: float


class LinearTracker:
    """Adapter for the Linear issue tracker.

    Uses a synchronous httpx client; the orchestrator calls it from a worker
    thread. Requests that fail with a 5xx, a 429 or a transport error are
    retried with a linearly increasing delay.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = LINEAR_GRAPHQL_URL,
        max_retries: int = 3,
        retry_delay_ms: int = 1000,
        state_cache_ttl_ms: int = 3_600_000,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the tracker.

        Args:
            api_key: Linear API key.
            base_url: GraphQL endpoint (for testing).
            max_retries: Retries after the first attempt for retryable failures.
            retry_delay_ms: Base delay between retries.
            state_cache_ttl_ms: How long team workflow states are cached.
            sleep: Sleep function, injectable for tests.
            clock: Monotonic clock, injectable for tests.
        """
        self.api_key = api_key
        self.base_url = base_url
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.state_cache_ttl_ms = state_cache_ttl_ms
        self._sleep = sleep
        self._clock = clock
        self._client: httpx.Client | None = None
        self._state_cache: dict[str, _StateCacheEntry] = {}

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client for GraphQL API."""
        if self._client is None:
            self._client = httpx.Client(
                headers={
                    "Authorization": self.api_key,
                    "Content-Type": "application/json",
                },
                timeout=30.0,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _graphql(
        self, query: str, variables: dict[str, Any], operation: str
    ) -> dict[str, Any]:
        """Execute a GraphQL request with retries.

        Raises:
            TrackerError: If the request keeps failing or GraphQL reports errors.
        """
        payload = {"query": query, "variables": variables}
        last_error: str = "no attempt made"

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = self.retry_delay_ms * attempt / 1000
                logger.debug("Retrying %s in %.1fs (attempt %d)", operation, delay, attempt + 1)
                self._sleep(delay)

            try:
                response = self.client.post(self.base_url, json=payload)
            except httpx.TransportError as e:
                last_error = f"transport error: {e}"
                logger.warning("Linear %s failed: %s", operation, last_error)
                continue

            if response.status_code >= 500 or response.status_code == 429:
                last_error = f"HTTP {response.status_code}"
                logger.warning("Linear %s failed: %s", operation, last_error)
                continue

            if response.status_code != 200:
                raise TrackerError(
                    f"Linear {operation} failed: {response.status_code} - {response.text}"
                )

            data: dict[str, Any] = response.json()
            errors = data.get("errors")
            if errors:
                details = "; ".join(f"[{i}] {e.get('message')}" for i, e in enumerate(errors))
                logger.error("Linear GraphQL errors in %s: %s", operation, details)
                raise TrackerError(f"Linear API error: {details}")
            return dict(data.get("data") or {})

        raise TrackerError(
            f"Linear {operation} failed after {self.max_retries + 1} attempts: {last_error}"
        )

    def get_ticket(self, identifier: str) -> Ticket:
        """Fetch a ticket by identifier (e.g. "ABC-123").

        Raises:
            TicketNotFoundError: If the ticket does not exist.
        """
        data = self._graphql(_ISSUE_QUERY, {"id": identifier}, "GetIssue")
        issue = data.get("issue")
        if not issue:
            raise TicketNotFoundError(f"Ticket {identifier} not found")
        return Ticket(
            id=issue["id"],
            identifier=issue["identifier"],
            title=issue["title"],
            description=issue.get("description"),
            team_id=(issue.get("team") or {}).get("id"),
            state_name=(issue.get("state") or {}).get("name"),
        )

    def _fetch_states(self, team_id: str) -> dict[str, str]:
        data = self._graphql(_STATES_QUERY, {"teamId": team_id}, "GetStates")
        nodes = ((data.get("team") or {}).get("states") or {}).get("nodes")
        if nodes is None:
            raise TrackerError(f"Failed to fetch states for team {team_id}")
        return {node["name"].lower(): node["id"] for node in nodes}

    def get_state_id(self, team_id: str, state_name: str) -> str:
        """Resolve a workflow state name to its ID, using the per-team cache.

        Falls back to a stale cache entry when the API is unavailable.

        Raises:
            StateNotFoundError: If the team has no state with that name.
            TrackerError: If states cannot be fetched and nothing is cached.
        """
        normalized = state_name.lower()
        cached = self._state_cache.get(team_id)
        now = self._clock()

        if cached and (now - cached.fetched_at) * 1000 < self.state_cache_ttl_ms:
            state_id = cached.states.get(normalized)
            if state_id:
                return state_id

        try:
            states = self._fetch_states(team_id)
        except TrackerError as e:
            if cached and normalized in cached.states:
                logger.warning(
                    "Using stale state cache for team %s due to API error: %s", team_id, e
                )
                return cached.states[normalized]
            raise

        self._state_cache[team_id] = _StateCacheEntry(states=states, fetched_at=now)
        state_id = states.get(normalized)
        if not state_id:
            available = ", ".join(sorted(states))
            raise StateNotFoundError(
                f'State "{state_name}" not found in team {team_id}. Available: {available}'
            )
        return state_id

    def update_status(self, ticket: Ticket, state_name: str) -> None:
        """Move a ticket to the named workflow state.

        Raises:
            TrackerUpdateError: If the update fails.
        """
        if not ticket.team_id:
            raise TrackerUpdateError(f"Ticket {ticket.identifier} has no team; cannot set state")
        try:
            state_id = self.get_state_id(ticket.team_id, state_name)
            data = self._graphql(
                _UPDATE_STATE_MUTATION,
                {"id": ticket.id, "stateId": state_id},
                "UpdateIssue",
            )
        except TrackerError as e:
            raise TrackerUpdateError(
                f"Failed to move {ticket.identifier} to {state_name}: {e}"
            ) from e

        if not (data.get("issueUpdate") or {}).get("success"):
            raise TrackerUpdateError(f"Linear rejected state change of {ticket.identifier}")
        logger.info("Moved %s to %s", ticket.identifier, state_name)

    def add_comment(self, ticket: Ticket, body: str) -> None:
        """Post a comment on a ticket.

        Raises:
            TrackerUpdateError: If the comment cannot be created.
        """
        try:
            data = self._graphql(
                _COMMENT_MUTATION,
                {"issueId": ticket.id, "body": body},
                "CreateComment",
            )
        except TrackerError as e:
            raise TrackerUpdateError(f"Failed to comment on {ticket.identifier}: {e}") from e

        if not (data.get("commentCreate") or {}).get("success"):
            raise TrackerUpdateError(f"Linear rejected comment on {ticket.identifier}")
        logger.info("Commented on %s", ticket.identifier)
