"""Integration commands: configure, run and inspect integrations."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple

import click
from rich.console import Console

from ...exceptions import AdapterMissingError
from ...models import IntegrationStatus, IntegrationType
from ..display import (
    display_adapters,
    display_integration_logs,
    display_integration_results,
    display_integrations,
)
from .init import load_services

console = Console()
logger = logging.getLogger(__name__)


def parse_settings(pairs: Tuple[str, ...]) -> Dict[str, Any]:
    """Parse ``KEY=VALUE`` options into a settings dict.

    Values are decoded as JSON when possible, so ``lat=40.7`` becomes a
    number and ``apiKey=abc`` stays a string.

    Raises:
        click.BadParameter: If a pair has no ``=``
    """
    settings: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected KEY=VALUE, got {pair!r}")
        try:
            value: Any = json.loads(raw)
        except ValueError:
            value = raw
        settings[key.strip()] = value
    return settings


@click.group("integrations")
def integrations_group() -> None:
    """Manage external data integrations."""
    pass


@integrations_group.command("adapters")
@click.pass_context
def integrations_adapters(ctx: click.Context) -> None:
    """List available adapters."""
    display_adapters(load_services(ctx).orchestrator.available_adapters())


@integrations_group.command("list")
@click.pass_context
def integrations_list(ctx: click.Context) -> None:
    """List configured integrations."""
    display_integrations(load_services(ctx).orchestrator.list_configs())


@integrations_group.command("add")
@click.option("--provider", required=True, help="Adapter id, e.g. mqtt_gateway")
@click.option("--name", required=True, help="Display name")
@click.option(
    "--type",
    "integration_type",
    type=click.Choice([t.value for t in IntegrationType]),
    help="Integration type (defaults to the adapter's)",
)
@click.option(
    "--setting",
    "-s",
    "settings",
    multiple=True,
    help="Provider setting as KEY=VALUE (repeatable)",
)
@click.option("--interval", type=float, help="Seconds between automatic syncs")
@click.option("--disabled", is_flag=True, help="Create the integration inactive")
@click.pass_context
def integrations_add(
    ctx: click.Context,
    provider: str,
    name: str,
    integration_type: Optional[str],
    settings: Tuple[str, ...],
    interval: Optional[float],
    disabled: bool,
) -> None:
    """Configure a new integration.

    Examples:
        homestead-sync integrations add --provider mqtt_gateway \\
            --name Greenhouse -s endpoint=http://gateway.local/readings
    """
    parsed = parse_settings(settings)
    if interval is not None:
        parsed["syncIntervalSeconds"] = interval

    orchestrator = load_services(ctx).orchestrator
    try:
        config = orchestrator.create_config(
            name=name,
            provider=provider,
            settings=parsed,
            integration_type=IntegrationType(integration_type) if integration_type else None,
            status=IntegrationStatus.INACTIVE if disabled else IntegrationStatus.ACTIVE,
        )
    except AdapterMissingError as e:
        raise click.ClickException(f"{e}; use --type to add it anyway")

    console.print(f"[green]✓ Added {config.name} ({config.id})[/green]")


def _set_status(ctx: click.Context, config_id: str, status: IntegrationStatus) -> None:
    config = load_services(ctx).orchestrator.set_status(config_id, status)
    if config is None:
        raise click.ClickException(f"Integration {config_id} not found")
    console.print(f"[green]✓ {config.name} is {config.status.value}[/green]")


@integrations_group.command("disable")
@click.argument("config_id")
@click.pass_context
def integrations_disable(ctx: click.Context, config_id: str) -> None:
    """Stop syncing an integration."""
    _set_status(ctx, config_id, IntegrationStatus.INACTIVE)


@integrations_group.command("enable")
@click.argument("config_id")
@click.pass_context
def integrations_enable(ctx: click.Context, config_id: str) -> None:
    """Resume syncing an integration."""
    _set_status(ctx, config_id, IntegrationStatus.ACTIVE)


@integrations_group.command("remove")
@click.argument("config_id")
@click.pass_context
def integrations_remove(ctx: click.Context, config_id: str) -> None:
    """Delete an integration configuration."""
    if not load_services(ctx).orchestrator.delete_config(config_id):
        raise click.ClickException(f"Integration {config_id} not found")
    console.print(f"[green]✓ Removed {config_id}[/green]")


@integrations_group.command("sync")
@click.argument("config_id", required=False)
@click.pass_context
def integrations_sync(ctx: click.Context, config_id: Optional[str]) -> None:
    """Sync one integration, or every enabled one when no id is given."""
    orchestrator = load_services(ctx).orchestrator
    console.print("\n[bold blue]🌱 Syncing integrations...[/bold blue]")
    try:
        if config_id:
            results = [asyncio.run(orchestrator.sync_integration(config_id))]
        else:
            results = asyncio.run(orchestrator.sync_all())
    except Exception as e:
        logger.exception("Integration sync failed")
        console.print(f"[red]✗ Integration sync failed: {e}[/red]")
        raise click.Abort()

    display_integration_results(results)


@integrations_group.command("logs")
@click.argument("config_id")
@click.option("--limit", type=int, default=20, show_default=True)
@click.pass_context
def integrations_logs(ctx: click.Context, config_id: str, limit: int) -> None:
    """Show recent log entries of an integration."""
    display_integration_logs(load_services(ctx).orchestrator.get_logs(config_id, limit))
