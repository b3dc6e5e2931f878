"""CLI entry point for the ticket autopilot.

Commands:
- serve: Run the orchestrator behind the REST API
- run: Work a single ticket to completion and exit
- tenants: Show configured tenants
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import replace
from pathlib import Path

import click

from autopilot.config import ConfigError, Settings, TenantRegistry
from autopilot.logging import setup_logging
from autopilot.services import Services, build_services
from autopilot.tracker import TrackerError


def _load_settings(tenants_path: Path | None) -> Settings:
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    if tenants_path is not None:
        settings = replace(settings, tenants_path=str(tenants_path))
    return settings


tenants_option = click.option(
    "-t",
    "--tenants",
    "tenants_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to tenants.yaml (default: $TENANTS_CONFIG_PATH or ./tenants.yaml)",
)
verbose_option = click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable debug logging",
)


@click.group()
@click.version_option(package_name="ticket-autopilot")
def main() -> None:
    """Ticket autopilot - turn tracker tickets into validated pull requests."""
    pass


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port")
@tenants_option
@verbose_option
def serve(host: str, port: int, tenants_path: Path | None, verbose: bool) -> None:
    """Run the orchestrator and the REST API until interrupted."""
    import uvicorn  # noqa: PLC0415

    from autopilot.api import create_app  # noqa: PLC0415

    setup_logging(level="DEBUG" if verbose else None)
    settings = _load_settings(tenants_path)
    app = create_app(settings=settings)
    click.echo(f"Serving on http://{host}:{port}/api/v1")
    uvicorn.run(app, host=host, port=port, log_config=None)


@main.command("tenants")
@tenants_option
def list_tenants(tenants_path: Path | None) -> None:
    """List configured tenants."""
    settings = _load_settings(tenants_path)
    try:
        registry = TenantRegistry.from_file(settings.tenants_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    if not len(registry):
        click.echo("No tenants configured.")
        return
    for tenant in registry.all():
        click.echo(
            f"{tenant.name}  team={tenant.linear_team_id}  repo={tenant.github_repo}  "
            f"path={tenant.repo_path}  max_agents={tenant.max_concurrent_agents}  "
            f"validation={tenant.validation.mode.value}"
        )


@main.command()
@click.argument("identifier")
@click.option("--tenant", "tenant_name", required=True, help="Tenant the ticket belongs to")
@tenants_option
@verbose_option
def run(identifier: str, tenant_name: str, tenants_path: Path | None, verbose: bool) -> None:
    """Work a single ticket, retrying on failure, then exit.

    Exits non-zero if the ticket did not end in a successful completion.
    """
    setup_logging(level="DEBUG" if verbose else None)
    settings = _load_settings(tenants_path)

    try:
        services = build_services(settings)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    try:
        succeeded = asyncio.run(_run_ticket(services, identifier, tenant_name))
    except (ConfigError, TrackerError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted.", err=True)
        sys.exit(130)
    finally:
        services.close()

    if not succeeded:
        click.echo(f"{identifier} did not complete successfully.", err=True)
        sys.exit(1)
    click.echo(f"{identifier} completed.")


async def _run_ticket(services: Services, identifier: str, tenant_name: str) -> bool:
    tenant = services.registry.get(tenant_name)
    ticket = await asyncio.to_thread(services.fetch_ticket, identifier)
    click.echo(f"Working on {ticket.identifier}: {ticket.title}")

    orchestrator = services.orchestrator
    orchestrator.admit(ticket, tenant)
    orchestrator.start()
    try:
        await orchestrator.process_queue()
        while not services.queue.is_empty() or orchestrator.get_status().active:
            await asyncio.sleep(services.settings.poll_interval_ms / 1000)
    finally:
        await orchestrator.shutdown()

    completions = services.tracking.list_completions(tenant=tenant.name, limit=1)
    return bool(
        completions
        and completions[0].ticket_identifier == ticket.identifier
        and completions[0].success
    )
