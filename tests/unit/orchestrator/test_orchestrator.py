"""Unit tests for Orchestrator."""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from autopilot.admission import AdmissionQueue
from autopilot.git_manager import NoCommits, PrCreated, PublishFailed
from autopilot.notifications import EventType
from autopilot.orchestrator import AgentPhase, Collaborators, NotRunningError, Orchestrator
from autopilot.runner import SubprocessResult
from autopilot.tracker import TrackerUpdateError
from autopilot.validation import ValidationResult, ValidationSummary

PR_URL = "https://github.com/acme/webapp/pull/7"
OK = SubprocessResult(success=True, output="done\nTokens: 10 input, 5 output", exit_code=0)
PASSED = ValidationSummary(
    passed=True,
    results=[ValidationResult("tests", True, "3 passed", duration_ms=1200)],
    total_duration_ms=1200,
)
FAILED = ValidationSummary(
    passed=False,
    results=[
        ValidationResult("tests", False, "AssertionError: expected 2", duration_ms=900),
        ValidationResult("lint", True, "clean"),
    ],
    total_duration_ms=900,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += timedelta(milliseconds=ms)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def collaborators() -> Collaborators:
    """Collaborators that succeed and open a PR."""
    c = Collaborators(
        tracker=MagicMock(),
        validator=MagicMock(),
        source_control=MagicMock(),
        notifier=MagicMock(),
        memory=MagicMock(),
        prompt_builder=MagicMock(),
        usage_tracker=MagicMock(),
        completion_recorder=MagicMock(),
    )
    c.prompt_builder.build.return_value = "Implement the ticket"
    c.validator.validate.return_value = PASSED
    c.source_control.publish.return_value = PrCreated(url=PR_URL)
    c.source_control.modified_files.return_value = ["src/app.py"]
    c.notifier.notify.return_value = 1
    return c


@pytest.fixture
def runner() -> MagicMock:
    runner = MagicMock()
    runner.run = AsyncMock(return_value=OK)
    return runner


@pytest.fixture
def queue(settings) -> AdmissionQueue:
    return AdmissionQueue(max_retries=settings.max_retries)


@pytest.fixture
def orchestrator(queue, runner, settings, collaborators, clock) -> Orchestrator:
    return Orchestrator(queue, runner, settings, collaborators, clock=clock)


def gate_runner(runner: MagicMock, gate: asyncio.Event, result=OK) -> None:
    """Make agent runs block until the gate opens."""

    async def run(*_args, **_kwargs):
        await gate.wait()
        return result

    runner.run = AsyncMock(side_effect=run)


async def dispatch(orchestrator: Orchestrator) -> None:
    """Run one scheduling tick and wait for the lifecycle it started."""
    task = await orchestrator.process_queue()
    assert task is not None
    await task


def statuses(collaborators: Collaborators) -> list[str]:
    return [c.args[1] for c in collaborators.tracker.update_status.call_args_list]


def events(collaborators: Collaborators) -> list[EventType]:
    return [c.args[0].type for c in collaborators.notifier.notify.call_args_list]


@pytest.mark.unit
class TestAdmission:
    """Tests for admit and the scheduling tick."""

    def test_admit_twice_keeps_one_entry(self, orchestrator, queue, ticket, tenant) -> None:
        assert orchestrator.admit(ticket, tenant) is True
        assert orchestrator.admit(ticket, tenant) is False

        assert queue.size() == 1

    @pytest.mark.asyncio
    async def test_admit_refuses_running_ticket(
        self, orchestrator, queue, runner, ticket, tenant
    ) -> None:
        gate = asyncio.Event()
        gate_runner(runner, gate)
        orchestrator.admit(ticket, tenant)
        task = await orchestrator.process_queue()

        assert orchestrator.admit(ticket, tenant) is False
        assert queue.is_empty()

        gate.set()
        await task

    @pytest.mark.asyncio
    async def test_empty_queue_tick(self, orchestrator) -> None:
        assert await orchestrator.process_queue() is None

    @pytest.mark.asyncio
    async def test_slot_reserved_before_lifecycle_runs(
        self, orchestrator, ticket, tenant
    ) -> None:
        orchestrator.admit(ticket, tenant)

        task = await orchestrator.process_queue()

        assert orchestrator.get_active_count("team-acme") == 1
        assert orchestrator.can_spawn_for_tenant(tenant) is False
        await task
        assert orchestrator.get_active_count() == 0

    @pytest.mark.asyncio
    async def test_tenant_at_capacity_is_not_dequeued(
        self, orchestrator, queue, runner, make_ticket, tenant
    ) -> None:
        gate = asyncio.Event()
        gate_runner(runner, gate)
        for key in ("ACME-1", "ACME-2", "ACME-3"):
            orchestrator.admit(make_ticket(key), tenant)

        first = await orchestrator.process_queue()
        assert await orchestrator.process_queue() is None
        assert await orchestrator.process_queue() is None
        assert queue.size() == 2

        gate.set()
        await first
        second = await orchestrator.process_queue()
        assert second is not None
        assert orchestrator.get_status().agents == ["ACME-2"]
        await second

    @pytest.mark.asyncio
    async def test_respects_higher_limits(
        self, orchestrator, runner, make_ticket, make_tenant
    ) -> None:
        gate = asyncio.Event()
        gate_runner(runner, gate)
        tenant = make_tenant(max_concurrent_agents=2)
        for key in ("ACME-1", "ACME-2", "ACME-3"):
            orchestrator.admit(make_ticket(key), tenant)

        tasks = [await orchestrator.process_queue(), await orchestrator.process_queue()]
        assert await orchestrator.process_queue() is None
        assert orchestrator.get_active_count("team-acme") == 2

        gate.set()
        await asyncio.gather(*tasks)

    @pytest.mark.asyncio
    async def test_head_of_line_blocking(
        self, orchestrator, queue, runner, make_ticket, make_tenant
    ) -> None:
        """A blocked head keeps a free tenant's ticket waiting behind it."""
        gate = asyncio.Event()
        gate_runner(runner, gate)
        acme = make_tenant("acme")
        globex = make_tenant("globex")
        orchestrator.admit(make_ticket("ACME-1"), acme)
        running = await orchestrator.process_queue()
        orchestrator.admit(make_ticket("ACME-2"), acme)
        orchestrator.admit(make_ticket("GLX-1", team_id="team-globex"), globex)

        assert await orchestrator.process_queue() is None

        assert [i.identifier for i in queue.get_all()] == ["ACME-2", "GLX-1"]
        assert orchestrator.get_active_count("team-globex") == 0

        gate.set()
        await running

    def test_spawn_outside_event_loop(self, orchestrator, queue, ticket, tenant) -> None:
        queue.enqueue(ticket, tenant)

        with pytest.raises(NotRunningError):
            orchestrator.spawn_agent(queue.dequeue())
        assert orchestrator.get_active_count() == 0


@pytest.mark.unit
class TestSuccess:
    """Tests for the publish path."""

    @pytest.mark.asyncio
    async def test_pr_created(
        self, orchestrator, collaborators, runner, settings, ticket, tenant
    ) -> None:
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        runner.run.assert_awaited_once_with(
            settings.agent_command,
            ["-p", "--dangerously-skip-permissions", "Implement the ticket"],
            cwd=tenant.repo_path,
            timeout_ms=settings.agent_timeout_ms,
        )
        collaborators.prompt_builder.build.assert_called_once_with(
            ticket, tenant.repo_path, "acme-1", True
        )
        assert statuses(collaborators) == ["In Progress", "In Review"]
        assert events(collaborators) == [
            EventType.AGENT_STARTED,
            EventType.PR_CREATED,
            EventType.AGENT_COMPLETED,
        ]

        publish = collaborators.source_control.publish.call_args
        assert publish.args[:3] == (tenant.repo_path, "acme-1", ticket)
        assert publish.args[3].startswith("## Validation Passed")
        assert publish.kwargs == {"github_repo": "acme/webapp", "base": "main"}

        comment = collaborators.tracker.add_comment.call_args.args[1]
        assert comment.startswith(f"✅ Implementation complete!\n\nPR: {PR_URL}")

        collaborators.usage_tracker.record_usage.assert_called_once_with(
            tenant, ticket, OK.output
        )
        recorded = collaborators.completion_recorder.record_completion.call_args
        assert recorded.kwargs["success"] is True
        assert recorded.kwargs["pr_url"] == PR_URL

    @pytest.mark.asyncio
    async def test_records_one_success_learning(
        self, orchestrator, collaborators, ticket, tenant
    ) -> None:
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        collaborators.memory.record_session.assert_called_once()
        repo_path, session = collaborators.memory.record_session.call_args.args
        assert repo_path == tenant.repo_path
        assert session.success is True
        assert session.modified_files == ["src/app.py"]
        assert session.ticket_title == ticket.title
        assert [o.step for o in session.validation_results] == ["tests"]
        assert orchestrator.get_active_count() == 0

    @pytest.mark.asyncio
    async def test_no_commits_goes_straight_to_done(
        self, orchestrator, collaborators, ticket, tenant
    ) -> None:
        collaborators.source_control.publish.return_value = NoCommits()
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        assert statuses(collaborators) == ["In Progress", "Done"]
        collaborators.tracker.add_comment.assert_not_called()
        assert EventType.PR_CREATED not in events(collaborators)
        recorded = collaborators.completion_recorder.record_completion.call_args
        assert recorded.kwargs["pr_url"] is None

    @pytest.mark.asyncio
    async def test_duration_uses_clock(
        self, orchestrator, collaborators, runner, clock, ticket, tenant
    ) -> None:
        async def slow_run(*_args, **_kwargs):
            clock.advance(90_000)
            return OK

        runner.run = AsyncMock(side_effect=slow_run)
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        recorded = collaborators.completion_recorder.record_completion.call_args
        assert recorded.kwargs["duration_ms"] == 90_000

    @pytest.mark.asyncio
    async def test_memory_disabled(self, queue, runner, settings, collaborators, ticket, tenant):
        orchestrator = Orchestrator(
            queue, runner, replace(settings, include_memory=False), collaborators
        )
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        assert collaborators.prompt_builder.build.call_args.args[3] is False

    @pytest.mark.asyncio
    async def test_handler_errors_are_swallowed(
        self, orchestrator, collaborators, ticket, tenant
    ) -> None:
        """Outages while finishing up neither crash the lifecycle nor hold the slot."""
        collaborators.tracker.add_comment.side_effect = TrackerUpdateError("down")
        collaborators.notifier.notify.side_effect = RuntimeError("webhook down")
        collaborators.completion_recorder.record_completion.side_effect = RuntimeError("db")
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        assert statuses(collaborators) == ["In Progress", "In Review"]
        collaborators.memory.record_session.assert_called_once()
        assert orchestrator.get_active_count() == 0


@pytest.mark.unit
class TestFailure:
    """Tests for the failure path."""

    @pytest.mark.asyncio
    async def test_validation_failure_is_not_success(
        self, orchestrator, collaborators, queue, ticket, tenant
    ) -> None:
        collaborators.validator.validate.return_value = FAILED
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        collaborators.source_control.publish.assert_not_called()
        collaborators.source_control.cleanup_branch.assert_called_once_with(
            tenant.repo_path, "acme-1", "main"
        )
        assert statuses(collaborators) == ["In Progress", "Backlog"]
        assert [i.identifier for i in queue.get_all()] == ["ACME-1"]
        assert queue.peek().attempts == 1

        comment = collaborators.tracker.add_comment.call_args.args[1]
        assert comment.startswith("❌ Autopilot failed (attempt 1/3)\n\nError: Validation failed:")
        assert "AssertionError: expected 2" in comment

        session = collaborators.memory.record_session.call_args.args[1]
        assert session.success is False
        assert [(o.step, o.passed) for o in session.validation_results] == [
            ("tests", False),
            ("lint", True),
        ]
        recorded = collaborators.completion_recorder.record_completion.call_args
        assert recorded.kwargs["success"] is False
        assert events(collaborators)[-1] == EventType.AGENT_FAILED

    @pytest.mark.asyncio
    async def test_non_zero_exit(
        self, orchestrator, collaborators, runner, queue, ticket, tenant
    ) -> None:
        runner.run.return_value = SubprocessResult(success=False, output="oops", exit_code=1)
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        collaborators.validator.validate.assert_not_called()
        assert queue.size() == 1
        failed = collaborators.notifier.notify.call_args.args[0]
        assert failed.type == EventType.AGENT_FAILED
        assert failed.error == "Agent exited with code 1"
        assert (failed.attempt, failed.max_attempts) == (1, 3)

    @pytest.mark.asyncio
    async def test_timeout(self, orchestrator, collaborators, runner, ticket, tenant) -> None:
        runner.run.return_value = SubprocessResult(
            success=False, output="", timed_out=True, timeout_ms=60_000
        )
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        comment = collaborators.tracker.add_comment.call_args.args[1]
        assert "Error: Agent timed out after 60 seconds" in comment

    @pytest.mark.asyncio
    async def test_spawn_error(self, orchestrator, collaborators, runner, ticket, tenant):
        runner.run.return_value = SubprocessResult(
            success=False, output="", error="Failed to spawn claude: not found"
        )
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        recorded = collaborators.completion_recorder.record_completion.call_args
        assert recorded.kwargs["error"] == "Failed to spawn claude: not found"

    @pytest.mark.asyncio
    async def test_tracker_down_at_start(
        self, orchestrator, collaborators, runner, queue, ticket, tenant
    ) -> None:
        collaborators.tracker.update_status.side_effect = TrackerUpdateError("tracker down")
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        runner.run.assert_not_awaited()
        assert queue.peek().attempts == 1
        assert orchestrator.get_active_count() == 0

    @pytest.mark.asyncio
    async def test_cleanup_failure_is_ignored(
        self, orchestrator, collaborators, runner, queue, ticket, tenant
    ) -> None:
        runner.run.return_value = SubprocessResult(success=False, output="", exit_code=2)
        collaborators.source_control.cleanup_branch.side_effect = RuntimeError("no branch")
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        assert statuses(collaborators)[-1] == "Backlog"
        assert queue.size() == 1

    @pytest.mark.asyncio
    async def test_secrets_are_redacted(
        self, orchestrator, collaborators, runner, ticket, tenant
    ) -> None:
        token = "ghp_" + "x" * 36
        runner.run.return_value = SubprocessResult(
            success=False, output="", error=f"Failed to spawn with {token}"
        )
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        comment = collaborators.tracker.add_comment.call_args.args[1]
        assert token not in comment
        assert "[GITHUB_TOKEN]" in comment

    @pytest.mark.asyncio
    async def test_dropped_after_max_attempts(
        self, orchestrator, collaborators, runner, queue, ticket, tenant
    ) -> None:
        runner.run.return_value = SubprocessResult(success=False, output="", exit_code=1)
        orchestrator.admit(ticket, tenant)

        for _ in range(3):
            await dispatch(orchestrator)

        assert await orchestrator.process_queue() is None
        assert queue.get_all() == []
        comments = [c.args[1] for c in collaborators.tracker.add_comment.call_args_list]
        assert [c.splitlines()[0] for c in comments] == [
            "❌ Autopilot failed (attempt 1/3)",
            "❌ Autopilot failed (attempt 2/3)",
            "❌ Autopilot failed (attempt 3/3)",
        ]


@pytest.mark.unit
class TestPublishFailure:
    """Tests for the terminal publish failure path."""

    @pytest.mark.asyncio
    async def test_needs_attention_without_requeue(
        self, orchestrator, collaborators, queue, ticket, tenant
    ) -> None:
        collaborators.source_control.publish.return_value = PublishFailed(
            error="Failed to push branch 'acme-1': rejected"
        )
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        assert queue.is_empty()
        collaborators.tracker.add_comment.assert_called_once()
        comment = collaborators.tracker.add_comment.call_args.args[1]
        assert "Manual attention required" in comment
        assert "Branch: `acme-1`" in comment
        assert "rejected" in comment
        assert statuses(collaborators) == ["In Progress"]
        collaborators.source_control.cleanup_branch.assert_not_called()
        collaborators.memory.record_session.assert_not_called()
        collaborators.completion_recorder.record_completion.assert_not_called()
        assert orchestrator.get_active_count() == 0

    @pytest.mark.asyncio
    async def test_publish_raising_is_a_publish_failure(
        self, orchestrator, collaborators, queue, ticket, tenant
    ) -> None:
        collaborators.source_control.publish.side_effect = RuntimeError("unexpected")
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)

        assert queue.is_empty()
        collaborators.tracker.add_comment.assert_called_once()
        failed = collaborators.notifier.notify.call_args.args[0]
        assert failed.type == EventType.AGENT_FAILED
        assert failed.error == "unexpected"


@pytest.mark.unit
class TestLifecycleCrash:
    """Exceptions that escape a lifecycle are logged."""

    @pytest.mark.asyncio
    async def test_logged_with_traceback(
        self, orchestrator, ticket, tenant, monkeypatch, caplog
    ) -> None:
        def explode(_summary):
            raise RuntimeError("formatter broke")

        monkeypatch.setattr(
            "autopilot.orchestrator.orchestrator.format_validation_summary", explode
        )
        orchestrator.admit(ticket, tenant)
        task = await orchestrator.process_queue()

        with pytest.raises(RuntimeError, match="formatter broke"):
            await task
        await asyncio.sleep(0)

        [record] = [r for r in caplog.records if "crashed" in r.getMessage()]
        assert record.levelname == "ERROR"
        assert "agent-ACME-1" in record.getMessage()
        assert record.exc_info[1] is task.exception()
        assert orchestrator.get_active_count() == 0

    @pytest.mark.asyncio
    async def test_clean_finish_logs_nothing(self, orchestrator, ticket, tenant, caplog):
        orchestrator.admit(ticket, tenant)

        await dispatch(orchestrator)
        await asyncio.sleep(0)

        assert not [r for r in caplog.records if "crashed" in r.getMessage()]


@pytest.mark.unit
class TestStuckAgents:
    """Tests for check_stuck_agents."""

    @pytest.mark.asyncio
    async def test_notifies_once(
        self, orchestrator, collaborators, runner, clock, settings, ticket, tenant
    ) -> None:
        gate = asyncio.Event()
        gate_runner(runner, gate)
        orchestrator.admit(ticket, tenant)
        task = await orchestrator.process_queue()

        assert await orchestrator.check_stuck_agents() == []
        clock.advance(settings.stuck_threshold_ms + 1)
        assert await orchestrator.check_stuck_agents() == ["ACME-1"]
        clock.advance(60_000)
        assert await orchestrator.check_stuck_agents() == []

        stuck = [e for e in events(collaborators) if e == EventType.AGENT_STUCK]
        assert len(stuck) == 1
        assert orchestrator.get_active_agents()[0].notified_stuck is True

        gate.set()
        await task

    @pytest.mark.asyncio
    async def test_exactly_at_threshold_is_not_stuck(
        self, orchestrator, runner, clock, settings, ticket, tenant
    ) -> None:
        gate = asyncio.Event()
        gate_runner(runner, gate)
        orchestrator.admit(ticket, tenant)
        task = await orchestrator.process_queue()

        clock.advance(settings.stuck_threshold_ms)
        assert await orchestrator.check_stuck_agents() == []

        gate.set()
        await task


@pytest.mark.unit
class TestStatus:
    """Tests for get_status and get_active_agents."""

    @pytest.mark.asyncio
    async def test_snapshot(self, orchestrator, runner, make_ticket, tenant) -> None:
        gate = asyncio.Event()
        gate_runner(runner, gate)
        orchestrator.admit(make_ticket("ACME-1"), tenant)
        orchestrator.admit(make_ticket("ACME-2"), tenant)
        task = await orchestrator.process_queue()
        await asyncio.sleep(0.05)

        status = orchestrator.get_status()
        assert (status.active, status.queued, status.agents) == (1, 1, ["ACME-1"])
        assert status.running is False

        agents = orchestrator.get_active_agents()
        assert agents[0].phase == AgentPhase.RUNNING
        agents[0].notified_stuck = True
        assert orchestrator.get_active_agents()[0].notified_stuck is False

        gate.set()
        await task


@pytest.mark.unit
class TestRunning:
    """Tests for start, stop and shutdown."""

    def test_start_outside_event_loop(self, orchestrator) -> None:
        with pytest.raises(NotRunningError):
            orchestrator.start()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, orchestrator) -> None:
        orchestrator.start()
        poll_task = orchestrator._poll_task
        orchestrator.start()

        assert orchestrator._poll_task is poll_task
        assert orchestrator.running is True

        await orchestrator.stop()
        assert orchestrator.running is False

    @pytest.mark.asyncio
    async def test_ticks_dispatch_admitted_tickets(
        self, orchestrator, collaborators, ticket, tenant
    ) -> None:
        orchestrator.admit(ticket, tenant)
        orchestrator.start()

        async def completed() -> None:
            while not collaborators.completion_recorder.record_completion.called:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(completed(), timeout=5)
        await orchestrator.shutdown(poll_ms=10)

        assert orchestrator.get_active_count() == 0

    @pytest.mark.asyncio
    async def test_tick_errors_do_not_stop_ticks(self, orchestrator) -> None:
        orchestrator.process_queue = AsyncMock(side_effect=[RuntimeError("boom"), None, None])
        orchestrator.start()

        async def ticked_again() -> None:
            while orchestrator.process_queue.await_count < 2:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(ticked_again(), timeout=5)
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_agents(
        self, orchestrator, runner, ticket, tenant
    ) -> None:
        gate = asyncio.Event()
        gate_runner(runner, gate)
        orchestrator.admit(ticket, tenant)
        orchestrator.start()
        task = await orchestrator.process_queue()

        shutdown = asyncio.create_task(orchestrator.shutdown(poll_ms=10))
        await asyncio.sleep(0.05)
        assert not shutdown.done()
        assert orchestrator.running is False

        gate.set()
        await asyncio.wait_for(shutdown, timeout=5)
        assert task.done()
        assert orchestrator.get_active_count() == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_acme_scenario(
    orchestrator, collaborators, runner, queue, make_ticket, make_tenant
) -> None:
    """Two tickets for a single-slot tenant run one after the other."""
    gate = asyncio.Event()
    gate_runner(runner, gate)
    acme = make_tenant("acme", max_concurrent_agents=1)
    orchestrator.admit(make_ticket("ABC-1"), acme)
    orchestrator.admit(make_ticket("ABC-2"), acme)

    first = await orchestrator.process_queue()
    assert orchestrator.get_status().agents == ["ABC-1"]
    assert await orchestrator.process_queue() is None
    assert [i.identifier for i in queue.get_all()] == ["ABC-2"]

    gate.set()
    await first
    assert statuses(collaborators) == ["In Progress", "In Review"]
    assert orchestrator.get_active_count() == 0

    second = await orchestrator.process_queue()
    assert orchestrator.get_status().agents == ["ABC-2"]
    await second
    assert queue.is_empty()
    published = [c.args[1] for c in collaborators.source_control.publish.call_args_list]
    assert published == ["abc-1", "abc-2"]
