"""Sync commands: run cycles and manage the outbox."""

import asyncio
import logging
from typing import Optional

import click
from rich.console import Console

from ...models import QueueStatus
from ..display import display_queue_items, display_queue_stats, display_sync_result
from .init import InitializationError, load_services

console = Console()
logger = logging.getLogger(__name__)


@click.group("sync")
def sync_group() -> None:
    """Push local changes and pull remote ones."""
    pass


@sync_group.command("run")
@click.option(
    "--wait",
    is_flag=True,
    help="Wait for a running cycle to finish instead of skipping",
)
@click.pass_context
def sync_run(ctx: click.Context, wait: bool) -> None:
    """Run one sync cycle against the remote replica.

    Examples:
        homestead-sync sync run
    """
    services = load_services(ctx)
    try:
        engine = services.require_engine()
    except InitializationError as e:
        raise click.ClickException(str(e))

    console.print("\n[bold blue]🔄 Syncing with remote replica...[/bold blue]")
    try:
        result = asyncio.run(engine.run_sync_cycle(trigger="manual", wait=wait))
    except Exception as e:
        logger.exception("Sync failed")
        console.print(f"[red]✗ Sync failed: {e}[/red]")
        raise click.Abort()

    display_sync_result(result)
    if result.errors:
        ctx.exit(1)


@sync_group.command("status")
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([s.value for s in QueueStatus]),
    help="Only list items with this status",
)
@click.option("--list", "show_items", is_flag=True, help="List queue items")
@click.pass_context
def sync_status(ctx: click.Context, status_filter: Optional[str], show_items: bool) -> None:
    """Show outbox counts and, optionally, queue items."""
    services = load_services(ctx)
    interceptor = services.interceptor

    console.print("\n[bold cyan]📤 Outbox[/bold cyan]")
    display_queue_stats(interceptor.stats())

    unresolved = services.resolver.list_unresolved()
    if unresolved:
        console.print(
            f"[yellow]⚠ {len(unresolved)} unresolved conflict(s)[/yellow]"
        )

    if show_items or status_filter:
        status = QueueStatus(status_filter) if status_filter else None
        display_queue_items(interceptor.list_items(status))


@sync_group.command("retry")
@click.argument("item_id", required=False)
@click.option("--all", "retry_all", is_flag=True, help="Retry every failed item")
@click.pass_context
def sync_retry(ctx: click.Context, item_id: Optional[str], retry_all: bool) -> None:
    """Requeue a failed item (or all of them) with a fresh attempt budget."""
    interceptor = load_services(ctx).interceptor

    if retry_all:
        count = interceptor.retry_failed()
        console.print(f"[green]✓ Requeued {count} failed item(s)[/green]")
        return

    if not item_id:
        raise click.UsageError("Give an ITEM_ID or --all")

    item = interceptor.retry(item_id)
    if item is None:
        raise click.ClickException(f"Queue item {item_id} not found")
    console.print(f"[green]✓ Item {item_id} is {item.status.value}[/green]")


@sync_group.command("clear")
@click.argument("item_id")
@click.pass_context
def sync_clear(ctx: click.Context, item_id: str) -> None:
    """Drop a queue item without uploading it."""
    if not load_services(ctx).interceptor.clear(item_id):
        raise click.ClickException(f"Queue item {item_id} not found")
    console.print(f"[green]✓ Cleared {item_id}[/green]")


@sync_group.command("purge")
@click.pass_context
def sync_purge(ctx: click.Context) -> None:
    """Delete delivered queue items."""
    count = load_services(ctx).interceptor.purge_done()
    console.print(f"[green]✓ Purged {count} delivered item(s)[/green]")
