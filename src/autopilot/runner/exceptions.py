"""Custom exceptions for the agent subprocess runner."""


class RunnerError(Exception):
    """Base exception for agent run failures."""


class SpawnError(RunnerError):
    """The agent executable could not be started."""


class AgentExitError(RunnerError):
    """The agent exited with a non-zero code."""

    def __init__(self, exit_code: int | None, message: str | None = None) -> None:
        self.exit_code = exit_code
        super().__init__(message or f"Agent exited with code {exit_code}")


class AgentTimeoutError(RunnerError):
    """The agent exceeded its hard timeout."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Agent timed out after {timeout_ms // 1000} seconds")
