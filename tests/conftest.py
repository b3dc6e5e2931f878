"""Shared pytest fixtures and configuration."""

from collections.abc import Callable

import pytest

from autopilot.config import (
    ChannelType,
    NotificationChannel,
    Settings,
    TenantConfig,
    ValidationConfig,
)
from autopilot.tracker import Ticket


# Register custom markers
def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: fast tests with no external dependencies")
    config.addinivalue_line("markers", "integration: component interaction tests")


# Shared fixtures


@pytest.fixture
def make_ticket() -> Callable[..., Ticket]:
    """Factory for tickets; keyword arguments override the defaults."""

    def _make(identifier: str = "ACME-1", **kwargs: object) -> Ticket:
        defaults: dict[str, object] = {
            "id": f"id-{identifier}",
            "title": f"Implement {identifier}",
            "description": "Do the thing",
            "team_id": "team-acme",
            "state_name": "Todo",
        }
        defaults.update(kwargs)
        return Ticket(identifier=identifier, **defaults)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def make_tenant(tmp_path) -> Callable[..., TenantConfig]:
    """Factory for tenants whose repo_path lives under tmp_path."""

    def _make(name: str = "acme", **kwargs: object) -> TenantConfig:
        defaults: dict[str, object] = {
            "linear_team_id": f"team-{name}",
            "repo_path": str(tmp_path / name),
            "github_repo": f"{name}/webapp",
            "max_concurrent_agents": 1,
            "validation": ValidationConfig(),
            "notifications": (
                NotificationChannel(
                    type=ChannelType.WEBHOOK, webhook_url=f"https://hooks.example.com/{name}"
                ),
            ),
        }
        defaults.update(kwargs)
        return TenantConfig(name=name, **defaults)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def ticket(make_ticket: Callable[..., Ticket]) -> Ticket:
    return make_ticket()


@pytest.fixture
def tenant(make_tenant: Callable[..., TenantConfig]) -> TenantConfig:
    return make_tenant()


@pytest.fixture
def settings() -> Settings:
    """Settings with short intervals for tests."""
    return Settings(
        stuck_threshold_ms=600_000,
        agent_timeout_ms=60_000,
        poll_interval_ms=10,
        health_check_interval_ms=10,
        sigkill_grace_ms=100,
        max_retries=3,
        retry_delay_ms=0,
        linear_api_key="lin_api_test",
        github_token="ghp_test",
        db_path=":memory:",
    )
