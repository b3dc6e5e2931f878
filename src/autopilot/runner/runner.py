"""SubprocessRunner - Runs the coding agent with output capture and a hard timeout."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import sys
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, TextIO

from autopilot.runner.models import SubprocessResult

if TYPE_CHECKING:
    from asyncio.subprocess import Process

logger = logging.getLogger("autopilot.runner")

# Only these host variables reach the agent; credentials for the tracker,
# GitHub and the orchestrator itself stay behind.
DEFAULT_ENV_ALLOWLIST: tuple[str, ...] = (
    "PATH",
    "HOME",
    "USER",
    "LANG",
    "LC_ALL",
    "TERM",
    "SHELL",
    "TMPDIR",
    "ANTHROPIC_API_KEY",
    "CLAUDE_CODE_USE_BEDROCK",
    "CLAUDE_CODE_USE_VERTEX",
    "GIT_AUTHOR_NAME",
    "GIT_AUTHOR_EMAIL",
    "GIT_COMMITTER_NAME",
    "GIT_COMMITTER_EMAIL",
)

_READ_CHUNK = 4096


def build_agent_env(
    allowlist: Iterable[str], source: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Build the child environment from an allowlist of variable names.

    Args:
        allowlist: Variable names permitted to pass through.
        source: Environment to copy from. Defaults to os.environ.

    Returns:
        A new mapping holding only allowlisted variables present in source.
    """
    env = os.environ if source is None else source
    return {name: env[name] for name in allowlist if name in env}


class SubprocessRunner:
    """Supervises a single external process per call.

    Output from stdout and stderr is collected into one buffer and mirrored to
    this process's own streams while the child runs. On timeout the child gets
    SIGTERM and the call returns immediately; a background task sends SIGKILL
    if the child is still alive after the grace period.
    """

    def __init__(
        self,
        sigkill_grace_ms: int = 5000,
        env_allowlist: Iterable[str] = DEFAULT_ENV_ALLOWLIST,
        mirror_output: bool = True,
    ) -> None:
        """Initialize the runner.

        Args:
            sigkill_grace_ms: Delay between SIGTERM and SIGKILL on timeout.
            env_allowlist: Environment variable names forwarded to the child.
            mirror_output: Whether to echo child output to our stdout/stderr.
        """
        self.sigkill_grace_ms = sigkill_grace_ms
        self.env_allowlist = tuple(dict.fromkeys(env_allowlist))
        self.mirror_output = mirror_output
        self._escalations: set[asyncio.Task[bool]] = set()

    @property
    def pending_escalations(self) -> set[asyncio.Task[bool]]:
        """Kill-escalation tasks that have not finished yet."""
        return {task for task in self._escalations if not task.done()}

    async def run(
        self,
        command: str,
        args: list[str],
        cwd: str,
        timeout_ms: int,
    ) -> SubprocessResult:
        """Run a command and wait for it to exit or time out.

        Args:
            command: Executable name or path.
            args: Argument vector, passed without shell interpretation.
            cwd: Working directory for the child.
            timeout_ms: Hard timeout.

        Returns:
            SubprocessResult describing the outcome. Never raises for process
            failures.
        """
        env = build_agent_env(self.env_allowlist)
        logger.info("Spawning %s in %s (timeout=%dms)", command, cwd, timeout_ms)

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to spawn %s: %s", command, e)
            return SubprocessResult(
                success=False,
                output="",
                error=f"Failed to spawn {command}: {e}",
                timeout_ms=timeout_ms,
            )

        chunks: list[str] = []
        completion = asyncio.ensure_future(self._drain_and_wait(process, chunks))

        try:
            # shield keeps draining after a timeout so the child never blocks on a full pipe
            exit_code = await asyncio.wait_for(asyncio.shield(completion), timeout_ms / 1000)
        except TimeoutError:
            logger.warning(
                "Process %s (pid %s) exceeded %dms, sending SIGTERM",
                command,
                process.pid,
                timeout_ms,
            )
            self._send_terminate(process)
            escalation = asyncio.create_task(self._escalate(process, completion))
            self._escalations.add(escalation)
            escalation.add_done_callback(self._escalations.discard)
            return SubprocessResult(
                success=False,
                output="".join(chunks),
                timed_out=True,
                timeout_ms=timeout_ms,
            )

        logger.info("Process %s exited with code %s", command, exit_code)
        return SubprocessResult(
            success=exit_code == 0,
            output="".join(chunks),
            exit_code=exit_code,
            timeout_ms=timeout_ms,
        )

    async def _drain_and_wait(self, process: Process, chunks: list[str]) -> int:
        await asyncio.gather(
            self._pump(process.stdout, chunks, "stdout"),
            self._pump(process.stderr, chunks, "stderr"),
        )
        return await process.wait()

    async def _pump(
        self, stream: asyncio.StreamReader | None, chunks: list[str], name: str
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(_READ_CHUNK)
            if not data:
                tail = decoder.decode(b"", final=True)
                if tail:
                    self._collect(tail, chunks, name)
                return
            text = decoder.decode(data)
            if text:
                self._collect(text, chunks, name)

    def _collect(self, text: str, chunks: list[str], name: str) -> None:
        chunks.append(text)
        if self.mirror_output:
            target: TextIO = sys.stdout if name == "stdout" else sys.stderr
            target.write(text)
            target.flush()

    def _send_terminate(self, process: Process) -> None:
        try:
            process.terminate()
        except ProcessLookupError:
            pass

    async def _escalate(self, process: Process, completion: asyncio.Future[int]) -> bool:
        """Send SIGKILL if the process outlives the grace period.

        Returns:
            True if SIGKILL was sent.
        """
        try:
            await asyncio.wait_for(asyncio.shield(completion), self.sigkill_grace_ms / 1000)
            return False
        except TimeoutError:
            pass

        if process.returncode is not None:
            return False

        logger.warning("Process %s ignored SIGTERM, sending SIGKILL", process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            return False
        await process.wait()
        return True
