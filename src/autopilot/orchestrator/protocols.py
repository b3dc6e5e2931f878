"""Interfaces of the services the orchestrator drives.

All methods are synchronous; the orchestrator runs them in worker threads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from autopilot.config import TenantConfig, ValidationConfig
    from autopilot.git_manager import PrPublishResult
    from autopilot.memory import SessionLearnings
    from autopilot.notifications import NotificationEvent
    from autopilot.tracker import Ticket
    from autopilot.validation import ValidationSummary


class TicketTracker(Protocol):
    def update_status(self, ticket: Ticket, state_name: str) -> None: ...

    def add_comment(self, ticket: Ticket, body: str) -> None: ...


class Validator(Protocol):
    def validate(self, repo_path: str, config: ValidationConfig) -> ValidationSummary: ...


class SourceControl(Protocol):
    def publish(
        self,
        repo_path: str | Path,
        branch_name: str,
        ticket: Ticket,
        summary: str | None = None,
        *,
        github_repo: str,
        base: str = "main",
    ) -> PrPublishResult: ...

    def cleanup_branch(self, repo_path: str | Path, branch: str, base: str = "main") -> None: ...

    def modified_files(
        self, repo_path: str | Path, branch: str, base: str = "main"
    ) -> list[str]: ...


class Notifier(Protocol):
    def notify(self, event: NotificationEvent) -> Any: ...


class MemoryStore(Protocol):
    def record_session(self, repo_path: str | Path, session: SessionLearnings) -> Any: ...

    def format_for_prompt(self, repo_path: str | Path) -> str: ...


class PromptBuilder(Protocol):
    def build(
        self, ticket: Ticket, repo_path: str, branch_name: str, include_memory: bool = True
    ) -> str: ...


class UsageTracker(Protocol):
    def record_usage(self, tenant: TenantConfig, ticket: Ticket, output: str) -> Any: ...


class CompletionRecorder(Protocol):
    def record_completion(
        self,
        tenant: TenantConfig,
        ticket: Ticket,
        success: bool,
        duration_ms: int,
        pr_url: str | None = None,
        error: str | None = None,
    ) -> Any: ...


@dataclass
class Collaborators:
    """Everything the orchestrator talks to besides the queue and the runner."""

    tracker: TicketTracker
    validator: Validator
    source_control: SourceControl
    notifier: Notifier
    memory: MemoryStore
    prompt_builder: PromptBuilder
    usage_tracker: UsageTracker
    completion_recorder: CompletionRecorder
