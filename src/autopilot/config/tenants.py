"""Tenant configuration loading.

Tenants are read once from a YAML file (JSON works too, being a YAML subset)
and resolved into frozen dataclasses with every optional section filled in,
so call sites never have to guess whether a field is present.

Example::

    tenants:
      - name: acme
        linear_team_id: team-123
        repo_path: /srv/repos/acme
        github_repo: acme/webapp
        max_concurrent_agents: 1
        validation:
          steps:
            - name: tests
              command: [pytest, -q]
        notifications:
          - type: slack
            webhook_url: https://hooks.slack.com/services/...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from autopilot.config.exceptions import ConfigError, UnknownTenantError

logger = logging.getLogger(__name__)

# camelCase spellings accepted for compatibility with older tenants.json files
_KEY_ALIASES = {
    "linearTeamId": "linear_team_id",
    "repoPath": "repo_path",
    "githubRepo": "github_repo",
    "maxConcurrentAgents": "max_concurrent_agents",
    "defaultBranch": "default_branch",
    "webhookUrl": "webhook_url",
    "coverageThreshold": "coverage_threshold",
}


class ValidationMode(str, Enum):
    """How the validation gate picks its steps."""

    AUTO = "auto"
    CUSTOM = "custom"


class ChannelType(str, Enum):
    """Supported notification channel types."""

    SLACK = "slack"
    DISCORD = "discord"
    WEBHOOK = "webhook"


@dataclass(frozen=True)
class ValidationStep:
    """A single custom validation command."""

    name: str
    command: tuple[str, ...]


@dataclass(frozen=True)
class ValidationConfig:
    """Validation gate configuration for a tenant.

    Attributes:
        mode: AUTO detects steps from the repository, CUSTOM runs `steps`.
        steps: Commands to run in CUSTOM mode.
        coverage_threshold: Line coverage percentage required, or None to use
            the process-wide default.
    """

    mode: ValidationMode = ValidationMode.AUTO
    steps: tuple[ValidationStep, ...] = ()
    coverage_threshold: float | None = None


@dataclass(frozen=True)
class NotificationChannel:
    """A notification destination."""

    type: ChannelType
    webhook_url: str


@dataclass(frozen=True)
class TenantConfig:
    """A configured target repository with its own concurrency limit.

    Attributes:
        name: Human readable tenant name.
        linear_team_id: Tracker team ID; the tenant's identity for admission control.
        repo_path: Local working tree the agent runs in.
        github_repo: GitHub repository in "owner/repo" format.
        max_concurrent_agents: Maximum agents running at once for this tenant.
        default_branch: Branch PRs target and cleanup returns to.
        validation: Resolved validation gate configuration.
        notifications: Channels to notify.
    """

    name: str
    linear_team_id: str
    repo_path: str
    github_repo: str
    max_concurrent_agents: int = 1
    default_branch: str = "main"
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    notifications: tuple[NotificationChannel, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TenantConfig:
        """Create a tenant from a mapping.

        Raises:
            ConfigError: If required fields are missing or invalid.
        """
        data = _normalize_keys(data)

        required_fields = ["name", "linear_team_id", "repo_path", "github_repo"]
        missing = [f for f in required_fields if not data.get(f)]
        if missing:
            label = data.get("name", "<unnamed>")
            raise ConfigError(f"Tenant {label}: missing required fields: {', '.join(missing)}")

        max_agents = data.get("max_concurrent_agents", 1)
        if not isinstance(max_agents, int) or isinstance(max_agents, bool) or max_agents < 1:
            raise ConfigError(
                f"Tenant {data['name']}: max_concurrent_agents must be a positive integer"
            )

        return cls(
            name=str(data["name"]),
            linear_team_id=str(data["linear_team_id"]),
            repo_path=str(data["repo_path"]),
            github_repo=str(data["github_repo"]),
            max_concurrent_agents=max_agents,
            default_branch=str(data.get("default_branch") or "main"),
            validation=_parse_validation(data["name"], data.get("validation")),
            notifications=_parse_notifications(data["name"], data.get("notifications")),
        )


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {_KEY_ALIASES.get(key, key): value for key, value in data.items()}


def _parse_validation(tenant: str, data: Any) -> ValidationConfig:
    if data is None:
        return ValidationConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Tenant {tenant}: validation must be a mapping")
    data = _normalize_keys(data)

    steps = []
    for raw in data.get("steps") or []:
        if not isinstance(raw, dict) or not raw.get("name") or not raw.get("command"):
            raise ConfigError(f"Tenant {tenant}: each validation step needs a name and command")
        command = raw["command"]
        if isinstance(command, str):
            # argv only; split on whitespace, no shell interpretation
            command = command.split()
        steps.append(ValidationStep(name=str(raw["name"]), command=tuple(str(c) for c in command)))

    threshold = data.get("coverage_threshold")
    return ValidationConfig(
        mode=ValidationMode.CUSTOM if steps else ValidationMode.AUTO,
        steps=tuple(steps),
        coverage_threshold=float(threshold) if threshold is not None else None,
    )


def _parse_notifications(tenant: str, data: Any) -> tuple[NotificationChannel, ...]:
    if not data:
        return ()
    channels = []
    for raw in data:
        raw = _normalize_keys(raw) if isinstance(raw, dict) else {}
        # {type, config: {webhookUrl}} is the older nested layout
        nested = raw.get("config")
        if isinstance(nested, dict):
            raw = {**_normalize_keys(nested), **raw}
        try:
            channel_type = ChannelType(raw.get("type"))
        except ValueError:
            logger.warning(
                "Tenant %s: unsupported notification type %r, skipping", tenant, raw.get("type")
            )
            continue
        url = raw.get("webhook_url")
        if not url:
            raise ConfigError(
                f"Tenant {tenant}: {channel_type.value} notification needs webhook_url"
            )
        channels.append(NotificationChannel(type=channel_type, webhook_url=str(url)))
    return tuple(channels)


def load_tenants(path: Path | str) -> list[TenantConfig]:
    """Load tenants from a YAML or JSON file.

    A missing file is not an error: no tenants are configured.

    Raises:
        ConfigError: If the file is unreadable or a tenant is invalid.
    """
    path = Path(path)
    if not path.exists():
        logger.warning("Tenants file not found at %s, no tenants configured", path)
        return []

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return []
    if not isinstance(data, dict) or not isinstance(data.get("tenants", []), list):
        raise ConfigError(f"{path} must be a mapping with a 'tenants' list")

    tenants = [TenantConfig.from_dict(_ensure_mapping(path, t)) for t in data.get("tenants") or []]

    seen: set[str] = set()
    for tenant in tenants:
        if tenant.linear_team_id in seen:
            raise ConfigError(f"Duplicate linear_team_id {tenant.linear_team_id} in {path}")
        seen.add(tenant.linear_team_id)
        if tenant.max_concurrent_agents > 1:
            logger.warning(
                "Tenant %s allows %d concurrent agents; they share the working tree at %s",
                tenant.name,
                tenant.max_concurrent_agents,
                tenant.repo_path,
            )

    logger.info("Loaded %d tenant(s) from %s", len(tenants), path)
    return tenants


def _ensure_mapping(path: Path, item: Any) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise ConfigError(f"Each tenant in {path} must be a mapping")
    return item


class TenantRegistry:
    """Lookup over the configured tenants."""

    def __init__(self, tenants: list[TenantConfig] | None = None) -> None:
        self._tenants = list(tenants or [])

    @classmethod
    def from_file(cls, path: Path | str) -> TenantRegistry:
        return cls(load_tenants(path))

    def all(self) -> list[TenantConfig]:
        return list(self._tenants)

    def by_team_id(self, team_id: str) -> TenantConfig | None:
        return next((t for t in self._tenants if t.linear_team_id == team_id), None)

    def by_name(self, name: str) -> TenantConfig | None:
        return next((t for t in self._tenants if t.name == name), None)

    def get(self, name: str) -> TenantConfig:
        """Look up a tenant by name.

        Raises:
            UnknownTenantError: If no tenant has that name.
        """
        tenant = self.by_name(name)
        if tenant is None:
            raise UnknownTenantError(f"Unknown tenant: {name}")
        return tenant

    def __len__(self) -> int:
        return len(self._tenants)
