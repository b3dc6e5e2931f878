"""Unit tests for build_services and Services."""

from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from autopilot.config import ConfigError, TenantRegistry
from autopilot.services import Services, build_services


@pytest.fixture
def registry(tenant) -> TenantRegistry:
    return TenantRegistry([tenant])


@pytest.mark.unit
class TestBuildServices:
    """Tests for build_services."""

    def test_requires_linear_key(self, settings, registry) -> None:
        with pytest.raises(ConfigError, match="LINEAR_API_KEY"):
            build_services(replace(settings, linear_api_key=""), registry)

    def test_requires_github_token(self, settings, registry) -> None:
        with (
            patch("autopilot.services.resolve_github_token", return_value=""),
            pytest.raises(ConfigError, match="GitHub token"),
        ):
            build_services(replace(settings, github_token=""), registry)

    def test_token_from_gh_cli(self, settings, registry) -> None:
        with patch("autopilot.services.resolve_github_token", return_value="gho_cli") as resolve:
            services = build_services(replace(settings, github_token=""), registry)
        try:
            resolve.assert_called_once()
            assert services.orchestrator.collaborators.source_control.token == "gho_cli"
        finally:
            services.close()

    def test_wiring(self, settings, registry) -> None:
        settings = replace(settings, agent_env_allowlist=("ANTHROPIC_API_KEY",))

        services = build_services(settings, registry)
        try:
            orchestrator = services.orchestrator
            collaborators = orchestrator.collaborators
            assert orchestrator.queue is services.queue
            assert services.queue.max_retries == 3
            assert collaborators.tracker is services.tracker
            assert collaborators.usage_tracker is services.tracking
            assert collaborators.completion_recorder is services.tracking
            assert collaborators.prompt_builder.memory is collaborators.memory
            assert orchestrator.runner.sigkill_grace_ms == 100
            assert "ANTHROPIC_API_KEY" in orchestrator.runner.env_allowlist
            assert "PATH" in orchestrator.runner.env_allowlist
            assert collaborators.validator.env_allowlist == orchestrator.runner.env_allowlist
            assert "GITHUB_TOKEN" not in collaborators.validator.env_allowlist
            assert services.registry is registry
            assert len(services.closers) == 4
        finally:
            services.close()

    def test_loads_registry_from_file(self, settings, tmp_path) -> None:
        path = tmp_path / "tenants.yaml"
        path.write_text(
            "tenants:\n"
            "  - name: acme\n"
            "    linear_team_id: team-acme\n"
            f"    repo_path: {tmp_path}\n"
            "    github_repo: acme/webapp\n"
        )

        services = build_services(replace(settings, tenants_path=str(path)))
        try:
            assert services.registry.get("acme").github_repo == "acme/webapp"
        finally:
            services.close()


@pytest.mark.unit
class TestServices:
    """Tests for the Services container."""

    def _services(self, settings, registry, closers) -> Services:
        return Services(
            settings=settings,
            registry=registry,
            queue=MagicMock(),
            orchestrator=MagicMock(),
            tracker=MagicMock(),
            tracking=MagicMock(),
            closers=closers,
        )

    def test_close_continues_after_error(self, settings, registry) -> None:
        failing = MagicMock(side_effect=RuntimeError("already closed"))
        other = MagicMock()
        services = self._services(settings, registry, [failing, other])

        services.close()
        services.close()

        failing.assert_called_once()
        other.assert_called_once()

    def test_fetch_and_admit(self, settings, registry, ticket, tenant) -> None:
        services = self._services(settings, registry, [])
        services.tracker.get_ticket.return_value = ticket
        services.orchestrator.admit.return_value = True

        assert services.fetch_ticket("ACME-1") is ticket
        assert services.admit(ticket, tenant) is True
        services.orchestrator.admit.assert_called_once_with(ticket, tenant)
