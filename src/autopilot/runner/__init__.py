"""Runner - Supervises one external coding-agent process."""

from autopilot.runner.exceptions import (
    AgentExitError,
    AgentTimeoutError,
    RunnerError,
    SpawnError,
)
from autopilot.runner.models import SubprocessResult
from autopilot.runner.runner import DEFAULT_ENV_ALLOWLIST, SubprocessRunner, build_agent_env

__all__ = [
    "DEFAULT_ENV_ALLOWLIST",
    "AgentExitError",
    "AgentTimeoutError",
    "RunnerError",
    "SpawnError",
    "SubprocessResult",
    "SubprocessRunner",
    "build_agent_env",
]
