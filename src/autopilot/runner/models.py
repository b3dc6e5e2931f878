"""Data models for the agent subprocess runner."""

from dataclasses import dataclass

from autopilot.runner.exceptions import AgentExitError, AgentTimeoutError, SpawnError


@dataclass(frozen=True)
class SubprocessResult:
    """Outcome of one supervised agent run.

    Attributes:
        success: True only when the process exited with code 0.
        output: Combined stdout and stderr, in arrival order.
        timed_out: Whether the hard timeout fired.
        exit_code: Process exit code, None if it never exited normally.
        error: Spawn error description, if the process could not start.
        timeout_ms: The timeout the run was bounded by.
    """

    success: bool
    output: str
    timed_out: bool = False
    exit_code: int | None = None
    error: str | None = None
    timeout_ms: int | None = None

    def raise_for_status(self) -> None:
        """Raise the error matching a failed run; no-op on success.

        Raises:
            AgentTimeoutError: If the run timed out.
            SpawnError: If the process never started.
            AgentExitError: If the process exited non-zero.
        """
        if self.success:
            return
        if self.timed_out:
            raise AgentTimeoutError(self.timeout_ms or 0)
        if self.error is not None:
            raise SpawnError(self.error)
        raise AgentExitError(self.exit_code)
