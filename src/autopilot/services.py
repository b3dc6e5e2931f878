"""Wiring of the concrete adapters into one set of process-wide services."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from autopilot.admission import AdmissionQueue
from autopilot.config import ConfigError, TenantRegistry, resolve_github_token
from autopilot.git_manager import GitManager
from autopilot.memory import FileMemoryStore
from autopilot.notifications import WebhookNotifier
from autopilot.orchestrator import Collaborators, Orchestrator
from autopilot.prompts import AgentPromptBuilder
from autopilot.runner import DEFAULT_ENV_ALLOWLIST, SubprocessRunner
from autopilot.tracker import LinearTracker
from autopilot.tracking import TrackingStore
from autopilot.validation import DefaultValidator

if TYPE_CHECKING:
    from autopilot.config import Settings, TenantConfig
    from autopilot.tracker import Ticket

logger = logging.getLogger("autopilot.services")


@dataclass
class Services:
    """Everything a running autopilot process needs, created once at startup."""

    settings: Settings
    registry: TenantRegistry
    queue: AdmissionQueue
    orchestrator: Orchestrator
    tracker: LinearTracker
    tracking: TrackingStore
    closers: list[Callable[[], None]] = field(default_factory=list)

    def fetch_ticket(self, identifier: str) -> Ticket:
        """Fetch a ticket from the tracker (blocking)."""
        return self.tracker.get_ticket(identifier)

    def admit(self, ticket: Ticket, tenant: TenantConfig) -> bool:
        return self.orchestrator.admit(ticket, tenant)

    def close(self) -> None:
        """Release HTTP clients and the database."""
        for close in self.closers:
            try:
                close()
            except Exception as e:
                logger.warning("Error while closing %s: %s", close, e)
        self.closers.clear()


def build_services(settings: Settings, registry: TenantRegistry | None = None) -> Services:
    """Create the queue, runner, adapters and orchestrator.

    Args:
        settings: Process settings.
        registry: Tenants; loaded from settings.tenants_path when omitted.

    Raises:
        ConfigError: If required credentials are missing.
    """
    if not settings.linear_api_key:
        raise ConfigError("LINEAR_API_KEY is not set")
    github_token = resolve_github_token(settings)
    if not github_token:
        raise ConfigError("No GitHub token: set GITHUB_TOKEN or run `gh auth login`")

    if registry is None:
        registry = TenantRegistry.from_file(settings.tenants_path)

    tracker = LinearTracker(
        settings.linear_api_key,
        max_retries=settings.max_retries,
        retry_delay_ms=settings.retry_delay_ms,
        state_cache_ttl_ms=settings.state_cache_ttl_ms,
    )
    git = GitManager(
        github_token,
        git_timeout_ms=settings.git_timeout_ms,
        push_timeout_ms=settings.git_push_timeout_ms,
        pr_timeout_ms=settings.pr_create_timeout_ms,
    )
    notifier = WebhookNotifier()
    memory = FileMemoryStore()
    tracking = TrackingStore(settings.db_path)

    queue = AdmissionQueue(max_retries=settings.max_retries)
    runner = SubprocessRunner(
        sigkill_grace_ms=settings.sigkill_grace_ms,
        env_allowlist=(*DEFAULT_ENV_ALLOWLIST, *settings.agent_env_allowlist),
    )
    orchestrator = Orchestrator(
        queue,
        runner,
        settings,
        Collaborators(
            tracker=tracker,
            validator=DefaultValidator(
                timeout_ms=settings.validation_timeout_ms,
                coverage_threshold=settings.coverage_threshold,
                env_allowlist=runner.env_allowlist,
            ),
            source_control=git,
            notifier=notifier,
            memory=memory,
            prompt_builder=AgentPromptBuilder(memory),
            usage_tracker=tracking,
            completion_recorder=tracking,
        ),
    )
    logger.info("Services ready for %d tenant(s)", len(registry))
    return Services(
        settings=settings,
        registry=registry,
        queue=queue,
        orchestrator=orchestrator,
        tracker=tracker,
        tracking=tracking,
        closers=[tracker.close, git.close, notifier.close, tracking.close],
    )
