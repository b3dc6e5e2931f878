"""Orchestrator - Admission control and lifecycle management for coding agents."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from autopilot.git_manager import PrCreated, PublishFailed, PublishFailure, sanitize_branch_name
from autopilot.logging import sanitize_for_log, truncate_output
from autopilot.memory import SessionLearnings, StepOutcome
from autopilot.notifications import NotificationEvent
from autopilot.orchestrator.exceptions import NotRunningError
from autopilot.orchestrator.models import ActiveAgentRecord, AgentPhase, OrchestratorStatus
from autopilot.validation import ValidationFailure, format_validation_summary

if TYPE_CHECKING:
    from autopilot.admission import AdmissionQueue, QueuedTicket
    from autopilot.config import Settings, TenantConfig
    from autopilot.git_manager import PrPublishResult
    from autopilot.orchestrator.protocols import Collaborators
    from autopilot.runner import SubprocessRunner
    from autopilot.tracker import Ticket
    from autopilot.validation import ValidationSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATE_IN_PROGRESS = "In Progress"
STATE_IN_REVIEW = "In Review"
STATE_DONE = "Done"
STATE_BACKLOG = "Backlog"

AGENT_ARGS = ("-p", "--dangerously-skip-permissions")
MAX_COMMENT_ERROR = 1000
MAX_MEMORY_ERROR = 500


class Orchestrator:
    """Dispatches queued tickets to agents and carries each through its lifecycle.

    The Orchestrator:
    - Admits tickets into the queue, refusing ones already queued or running
    - Dequeues the head ticket when its tenant has a free slot (strict FIFO,
      a blocked head blocks everyone behind it)
    - Runs the agent, the validation gate, and the publish step
    - Rolls failed tickets back and requeues them for another attempt
    - Flags agents that run longer than the stuck threshold

    All bookkeeping happens on the event loop thread. Synchronous
    collaborators run in worker threads and never touch orchestrator state.
    """

    def __init__(
        self,
        queue: AdmissionQueue,
        runner: SubprocessRunner,
        settings: Settings,
        collaborators: Collaborators,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the Orchestrator.

        Args:
            queue: Admission queue shared with whatever admits tickets.
            runner: Runner that supervises agent processes.
            settings: Timeouts, intervals and agent command.
            collaborators: Tracker, validator, source control and the rest.
            clock: Wall clock returning aware datetimes, injectable for tests.
        """
        self.queue = queue
        self.runner = runner
        self.settings = settings
        self.collaborators = collaborators
        self._clock = clock or (lambda: datetime.now(UTC))
        self._active: dict[str, ActiveAgentRecord] = {}
        self._lifecycles: dict[str, asyncio.Task[None]] = {}
        self._poll_task: asyncio.Task[None] | None = None
        self._health_task: asyncio.Task[None] | None = None

    # --- Admission ---

    def get_active_count(self, team_id: str | None = None) -> int:
        """Count running agents, optionally for one tenant."""
        if team_id is None:
            return len(self._active)
        return sum(1 for r in self._active.values() if r.tenant.linear_team_id == team_id)

    def can_spawn_for_tenant(self, tenant: TenantConfig) -> bool:
        return self.get_active_count(tenant.linear_team_id) < tenant.max_concurrent_agents

    def admit(self, ticket: Ticket, tenant: TenantConfig) -> bool:
        """Queue a ticket unless it is already queued or running.

        Returns:
            True if the ticket was queued.
        """
        if ticket.identifier in self._active:
            logger.info("Ticket %s already has a running agent, not queuing", ticket.identifier)
            return False
        return self.queue.enqueue(ticket, tenant)

    async def process_queue(self) -> asyncio.Task[None] | None:
        """Scheduling tick: dispatch the head of the queue if its tenant has room.

        Returns:
            The lifecycle task of the dispatched agent, or None.
        """
        head = self.queue.peek()
        if head is None:
            return None
        if not self.can_spawn_for_tenant(head.tenant):
            logger.debug(
                "Tenant %s at capacity (%d), %s waits at head of queue",
                head.tenant.name,
                head.tenant.max_concurrent_agents,
                head.identifier,
            )
            return None

        item = self.queue.dequeue()
        if item is None:
            return None
        return self.spawn_agent(item)

    def spawn_agent(self, item: QueuedTicket) -> asyncio.Task[None]:
        """Reserve a slot for a dequeued ticket and start its lifecycle.

        The active record exists before this returns, so the next scheduling
        tick already sees the slot as taken.

        Raises:
            NotRunningError: If called outside a running event loop.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError as e:
            raise NotRunningError("spawn_agent requires a running event loop") from e

        ticket = item.ticket
        record = ActiveAgentRecord(
            ticket=ticket,
            tenant=item.tenant,
            started_at=self._clock(),
            branch_name=sanitize_branch_name(ticket.identifier),
        )
        self._active[ticket.identifier] = record

        logger.info(
            "Spawning agent for %s: %s (tenant %s, branch %s)",
            ticket.identifier,
            ticket.title,
            item.tenant.name,
            record.branch_name,
        )
        task = asyncio.create_task(
            self._run_lifecycle(item, record), name=f"agent-{ticket.identifier}"
        )
        task.add_done_callback(_log_lifecycle_crash)
        self._lifecycles[ticket.identifier] = task
        return task

    # --- Lifecycle ---

    async def _run_lifecycle(self, item: QueuedTicket, record: ActiveAgentRecord) -> None:
        try:
            try:
                summary = await self._run_agent(item, record)
            except Exception as e:
                await self._handle_failure(item, record, e)
                return
            await self._handle_publish(item, record, summary)
        finally:
            self._active.pop(item.identifier, None)
            self._lifecycles.pop(item.identifier, None)
            logger.info(
                "Agent for %s finished in phase %s (%d active)",
                item.identifier,
                record.phase.value,
                len(self._active),
            )

    async def _run_agent(self, item: QueuedTicket, record: ActiveAgentRecord) -> ValidationSummary:
        """Run the agent and the validation gate.

        Returns:
            The passing validation summary.

        Raises:
            SpawnError, AgentExitError, AgentTimeoutError: If the agent run failed.
            ValidationFailure: If the work did not pass validation.
            Exception: Anything a collaborator raised along the way.
        """
        c = self.collaborators
        ticket, tenant = item.ticket, item.tenant

        await asyncio.to_thread(c.tracker.update_status, ticket, STATE_IN_PROGRESS)
        await self._safely(
            "start notification",
            ticket,
            c.notifier.notify,
            NotificationEvent.agent_started(ticket, tenant, record.branch_name),
        )

        prompt = await asyncio.to_thread(
            c.prompt_builder.build,
            ticket,
            tenant.repo_path,
            record.branch_name,
            self.settings.include_memory,
        )

        self._set_phase(record, AgentPhase.RUNNING)
        result = await self.runner.run(
            self.settings.agent_command,
            [*AGENT_ARGS, prompt],
            cwd=tenant.repo_path,
            timeout_ms=self.settings.agent_timeout_ms,
        )
        await self._safely(
            "usage tracking", ticket, c.usage_tracker.record_usage, tenant, ticket, result.output
        )
        result.raise_for_status()

        self._set_phase(record, AgentPhase.VALIDATING)
        summary = await asyncio.to_thread(c.validator.validate, tenant.repo_path, tenant.validation)
        if not summary.passed:
            raise ValidationFailure(
                summary, f"Validation failed:\n\n{format_validation_summary(summary)}"
            )
        return summary

    async def _handle_publish(
        self, item: QueuedTicket, record: ActiveAgentRecord, summary: ValidationSummary
    ) -> None:
        c = self.collaborators
        ticket, tenant = item.ticket, item.tenant
        self._set_phase(record, AgentPhase.PUBLISHING)
        formatted = format_validation_summary(summary)

        result: PrPublishResult
        try:
            result = await asyncio.to_thread(
                c.source_control.publish,
                tenant.repo_path,
                record.branch_name,
                ticket,
                formatted,
                github_repo=tenant.github_repo,
                base=tenant.default_branch,
            )
        except Exception as e:
            result = PublishFailed(error=str(e))

        if isinstance(result, PublishFailed):
            await self._handle_publish_failure(item, record, PublishFailure(result.error))
            return

        pr_url = result.url if isinstance(result, PrCreated) else None
        if pr_url:
            await self._safely(
                "PR notification",
                ticket,
                c.notifier.notify,
                NotificationEvent.pr_created(ticket, tenant, record.branch_name, pr_url),
            )
            await self._safely(
                "PR comment",
                ticket,
                c.tracker.add_comment,
                ticket,
                f"✅ Implementation complete!\n\nPR: {pr_url}\n\n{formatted}",
            )
            await self._safely(
                "review state", ticket, c.tracker.update_status, ticket, STATE_IN_REVIEW
            )
        else:
            logger.info("No commits for %s, marking done without a PR", ticket.identifier)
            await self._safely("done state", ticket, c.tracker.update_status, ticket, STATE_DONE)

        duration_ms = record.elapsed_ms(self._clock())
        await self._safely(
            "completion record",
            ticket,
            c.completion_recorder.record_completion,
            tenant,
            ticket,
            success=True,
            duration_ms=duration_ms,
            pr_url=pr_url,
        )
        await self._safely(
            "completion notification",
            ticket,
            c.notifier.notify,
            NotificationEvent.agent_completed(ticket, tenant, record.branch_name, duration_ms),
        )

        modified = await self._safely(
            "modified files",
            ticket,
            c.source_control.modified_files,
            tenant.repo_path,
            record.branch_name,
            tenant.default_branch,
        )
        await self._safely(
            "memory update",
            ticket,
            c.memory.record_session,
            tenant.repo_path,
            SessionLearnings(
                success=True,
                learnings=[f"Completed {ticket.identifier}: {ticket.title}"],
                modified_files=list(modified or []),
                ticket_title=ticket.title,
                validation_results=_step_outcomes(summary),
            ),
        )
        self._set_phase(record, AgentPhase.COMPLETED)
        logger.info(
            "Completed %s%s", ticket.identifier, f" with PR {pr_url}" if pr_url else " (no PR)"
        )

    async def _handle_publish_failure(
        self, item: QueuedTicket, record: ActiveAgentRecord, error: PublishFailure
    ) -> None:
        """Local work succeeded but could not be published; a human takes over."""
        c = self.collaborators
        ticket, tenant = item.ticket, item.tenant
        message = sanitize_for_log(str(error))
        self._set_phase(record, AgentPhase.NEEDS_ATTENTION)
        logger.error("Publishing %s failed, needs manual attention: %s", ticket.identifier, message)

        await self._safely(
            "attention comment",
            ticket,
            c.tracker.add_comment,
            ticket,
            "⚠️ Autopilot completed the work but could not open a pull request. "
            "Manual attention required.\n\n"
            f"Branch: `{record.branch_name}`\n\n"
            f"Error: {truncate_output(message, MAX_COMMENT_ERROR)}",
        )
        await self._safely(
            "failure notification",
            ticket,
            c.notifier.notify,
            NotificationEvent.agent_failed(ticket, tenant, record.branch_name, message, 1, 1),
        )

    async def _handle_failure(
        self, item: QueuedTicket, record: ActiveAgentRecord, error: Exception
    ) -> None:
        c = self.collaborators
        ticket, tenant = item.ticket, item.tenant
        message = sanitize_for_log(str(error) or type(error).__name__)
        attempt = item.attempts + 1
        max_attempts = self.queue.max_retries
        self._set_phase(record, AgentPhase.FAILED)
        logger.error(
            "Agent failed for %s (attempt %d/%d): %s",
            ticket.identifier,
            attempt,
            max_attempts,
            truncate_output(message, MAX_COMMENT_ERROR),
        )

        await self._safely(
            "branch cleanup",
            ticket,
            c.source_control.cleanup_branch,
            tenant.repo_path,
            record.branch_name,
            tenant.default_branch,
            quiet=True,
        )
        await self._safely(
            "failure notification",
            ticket,
            c.notifier.notify,
            NotificationEvent.agent_failed(
                ticket, tenant, record.branch_name, message, attempt, max_attempts
            ),
        )
        await self._safely(
            "failure comment",
            ticket,
            c.tracker.add_comment,
            ticket,
            f"❌ Autopilot failed (attempt {attempt}/{max_attempts})\n\n"
            f"Error: {truncate_output(message, MAX_COMMENT_ERROR)}",
        )
        await self._safely(
            "backlog state", ticket, c.tracker.update_status, ticket, STATE_BACKLOG
        )

        outcomes = _step_outcomes(error.summary) if isinstance(error, ValidationFailure) else []
        await self._safely(
            "memory update",
            ticket,
            c.memory.record_session,
            tenant.repo_path,
            SessionLearnings(
                success=False,
                errors=[message[:MAX_MEMORY_ERROR]],
                ticket_title=ticket.title,
                validation_results=outcomes,
            ),
        )
        await self._safely(
            "completion record",
            ticket,
            c.completion_recorder.record_completion,
            tenant,
            ticket,
            success=False,
            duration_ms=record.elapsed_ms(self._clock()),
            error=message,
        )

        self.queue.requeue(item)

    async def _safely(
        self,
        label: str,
        ticket: Ticket,
        func: Callable[..., T],
        *args: Any,
        quiet: bool = False,
        **kwargs: Any,
    ) -> T | None:
        """Run a synchronous collaborator call in a thread, logging any error.

        Returns:
            The call's result, or None if it raised.
        """
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except Exception as e:
            log = logger.debug if quiet else logger.error
            log("%s failed for %s: %s", label, ticket.identifier, e)
            return None

    def _set_phase(self, record: ActiveAgentRecord, phase: AgentPhase) -> None:
        logger.info(
            "Agent %s: %s -> %s", record.ticket.identifier, record.phase.value, phase.value
        )
        record.phase = phase

    # --- Health ---

    async def check_stuck_agents(self) -> list[str]:
        """Health tick: notify once about each agent running past the stuck threshold.

        Stuck agents are not terminated; the hard timeout does that.

        Returns:
            Identifiers newly flagged as stuck.
        """
        now = self._clock()
        flagged = []
        for record in list(self._active.values()):
            running_for = record.elapsed_ms(now)
            if record.notified_stuck or running_for <= self.settings.stuck_threshold_ms:
                continue
            record.notified_stuck = True
            flagged.append(record.ticket.identifier)
            logger.warning(
                "Agent for %s appears stuck (running for %dm)",
                record.ticket.identifier,
                running_for // 60_000,
            )
            await self._safely(
                "stuck notification",
                record.ticket,
                self.collaborators.notifier.notify,
                NotificationEvent.agent_stuck(
                    record.ticket, record.tenant, record.branch_name, running_for
                ),
            )
        return flagged

    # --- Running ---

    @property
    def running(self) -> bool:
        return self._poll_task is not None

    def start(self) -> None:
        """Schedule the scheduling and health ticks. Calling twice is a no-op.

        Raises:
            NotRunningError: If called outside a running event loop.
        """
        if self.running:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError as e:
            raise NotRunningError("start requires a running event loop") from e

        self._poll_task = asyncio.create_task(
            self._every(self.settings.poll_interval_ms, "scheduling", self.process_queue),
            name="orchestrator-poll",
        )
        self._health_task = asyncio.create_task(
            self._every(
                self.settings.health_check_interval_ms, "health check", self.check_stuck_agents
            ),
            name="orchestrator-health",
        )
        logger.info(
            "Orchestrator started (poll every %dms, health check every %dms)",
            self.settings.poll_interval_ms,
            self.settings.health_check_interval_ms,
        )

    async def stop(self) -> None:
        """Cancel the periodic ticks. Running agents are left alone."""
        tasks = [t for t in (self._poll_task, self._health_task) if t is not None]
        self._poll_task = None
        self._health_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Orchestrator stopped")

    async def wait_for_active_agents(self, poll_ms: int = 5000) -> None:
        """Wait until every running agent has finished."""
        while self._active:
            logger.info("Waiting for %d active agent(s) to finish...", len(self._active))
            await asyncio.sleep(poll_ms / 1000)

    async def shutdown(self, poll_ms: int = 5000) -> None:
        """Stop scheduling new agents and wait for running ones to finish."""
        await self.stop()
        await self.wait_for_active_agents(poll_ms)

    async def _every(
        self, interval_ms: int, name: str, tick: Callable[[], Awaitable[Any]]
    ) -> None:
        while True:
            await asyncio.sleep(interval_ms / 1000)
            try:
                await tick()
            except Exception:
                logger.exception("Error in %s tick", name)

    # --- Status ---

    def get_status(self) -> OrchestratorStatus:
        return OrchestratorStatus(
            active=len(self._active),
            queued=self.queue.size(),
            agents=list(self._active),
            running=self.running,
        )

    def get_active_agents(self) -> list[ActiveAgentRecord]:
        """Copies of the active records; mutating them has no effect."""
        return [replace(record) for record in self._active.values()]


def _step_outcomes(summary: ValidationSummary) -> list[StepOutcome]:
    return [StepOutcome(step=r.name, passed=r.passed, output=r.output) for r in summary.results]


def _log_lifecycle_crash(task: asyncio.Task[None]) -> None:
    """Log an exception that escaped a lifecycle task, since nothing awaits it."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Agent lifecycle %s crashed", task.get_name(), exc_info=exc)
