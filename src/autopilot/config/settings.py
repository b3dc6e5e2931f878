"""Process-wide settings sourced from the environment."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field

from autopilot.config.exceptions import ConfigError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _get_int(environ: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _get_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _get_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _get_csv(environ: Mapping[str, str], name: str) -> tuple[str, ...]:
    raw = environ.get(name, "")
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    """Tunables for the orchestrator and its adapters.

    All durations are integer milliseconds.
    """

    stuck_threshold_ms: int = 600_000
    agent_timeout_ms: int = 1_800_000
    poll_interval_ms: int = 2_000
    health_check_interval_ms: int = 60_000
    sigkill_grace_ms: int = 5_000
    max_retries: int = 3
    retry_delay_ms: int = 1_000
    validation_timeout_ms: int = 300_000
    git_timeout_ms: int = 30_000
    state_cache_ttl_ms: int = 3_600_000
    shutdown_timeout_ms: int = 30_000
    coverage_threshold: float = 0.0
    agent_command: str = "claude"
    agent_env_allowlist: tuple[str, ...] = field(default_factory=tuple)
    include_memory: bool = True
    tenants_path: str = "tenants.yaml"
    db_path: str = "autopilot.db"
    linear_api_key: str | None = None
    github_token: str | None = None

    @property
    def git_push_timeout_ms(self) -> int:
        return self.git_timeout_ms * 4

    @property
    def pr_create_timeout_ms(self) -> int:
        return self.git_timeout_ms * 2

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            Settings with defaults applied for unset variables.

        Raises:
            ConfigError: If a variable is set to an unparseable value.
        """
        env = os.environ if environ is None else environ
        return cls(
            stuck_threshold_ms=_get_int(env, "AGENT_STUCK_THRESHOLD_MS", 600_000),
            agent_timeout_ms=_get_int(env, "AGENT_TIMEOUT_MS", 1_800_000, minimum=1),
            poll_interval_ms=_get_int(env, "SPAWNER_POLL_INTERVAL_MS", 2_000, minimum=1),
            health_check_interval_ms=_get_int(
                env, "SPAWNER_HEALTH_CHECK_INTERVAL_MS", 60_000, minimum=1
            ),
            sigkill_grace_ms=_get_int(env, "SIGKILL_GRACE_MS", 5_000),
            max_retries=_get_int(env, "MAX_RETRIES", 3, minimum=1),
            retry_delay_ms=_get_int(env, "RETRY_DELAY_MS", 1_000),
            validation_timeout_ms=_get_int(env, "VALIDATION_TIMEOUT_MS", 300_000, minimum=1),
            git_timeout_ms=_get_int(env, "GIT_OPERATION_TIMEOUT_MS", 30_000, minimum=1),
            state_cache_ttl_ms=_get_int(env, "LINEAR_STATE_CACHE_TTL_MS", 3_600_000),
            shutdown_timeout_ms=_get_int(env, "SHUTDOWN_TIMEOUT_MS", 30_000),
            coverage_threshold=_get_float(env, "COVERAGE_THRESHOLD", 0.0),
            agent_command=env.get("AUTOPILOT_AGENT_COMMAND") or "claude",
            agent_env_allowlist=_get_csv(env, "AUTOPILOT_AGENT_ENV_ALLOWLIST"),
            include_memory=_get_bool(env, "AUTOPILOT_INCLUDE_MEMORY", True),
            tenants_path=env.get("TENANTS_CONFIG_PATH") or "tenants.yaml",
            db_path=env.get("AUTOPILOT_DB_PATH") or "autopilot.db",
            linear_api_key=env.get("LINEAR_API_KEY") or None,
            github_token=env.get("GITHUB_TOKEN") or None,
        )


def resolve_github_token(settings: Settings) -> str:
    """Get GitHub token from settings or the gh CLI."""
    if settings.github_token:
        return settings.github_token
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            check=True,
            timeout=10,
        )
        return result.stdout.strip()
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return ""
