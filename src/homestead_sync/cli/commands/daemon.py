"""Daemon command: run both schedulers until interrupted."""

import asyncio
import logging

import click
from rich.console import Console

from ...core.scheduler import IntegrationScheduler, SyncScheduler
from .init import SyncServices, load_services

console = Console()
logger = logging.getLogger(__name__)


async def run_daemon(services: SyncServices, stop_event: asyncio.Event) -> None:
    """Run the schedulers until ``stop_event`` is set.

    The sync scheduler only runs when a remote replica is configured.
    """
    config = services.config
    integration_scheduler = IntegrationScheduler(
        services.orchestrator, default_interval=config.integration_interval
    )

    sync_scheduler = None
    if services.engine is not None:
        sync_scheduler = SyncScheduler(
            services.engine,
            remote=services.remote,
            interval=config.sync_interval,
            connectivity_interval=config.connectivity_interval,
        )
    else:
        logger.warning("No remote replica configured, replication is disabled")

    await integration_scheduler.start()
    if sync_scheduler is not None:
        await sync_scheduler.start()

    try:
        await stop_event.wait()
    finally:
        if sync_scheduler is not None:
            await sync_scheduler.stop()
        await integration_scheduler.stop()


@click.command("daemon")
@click.pass_context
def daemon_command(ctx: click.Context) -> None:
    """Sync on a timer and poll integrations until Ctrl+C."""
    services = load_services(ctx)
    console.print("[bold cyan]🏡 Homestead sync daemon running (Ctrl+C to stop)[/bold cyan]")

    try:
        asyncio.run(run_daemon(services, asyncio.Event()))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")
