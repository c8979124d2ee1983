"""Display formatters and UI helpers for CLI."""

import json
import logging
from typing import Dict, Iterable, List

from rich.console import Console
from rich.table import Table

from ...core.integrations import IntegrationAdapter, IntegrationSyncResult
from ...core.sync import SyncResult
from ...models import (
    ConflictLog,
    IntegrationConfig,
    IntegrationLog,
    IntegrationStatus,
    LogStatus,
    QueueStatus,
    SyncQueueItem,
)
from ...utils.time_utils import format_ms

console = Console()
logger = logging.getLogger(__name__)

QUEUE_STATUS_STYLES = {
    QueueStatus.PENDING: "yellow",
    QueueStatus.PROCESSING: "cyan",
    QueueStatus.FAILED: "red",
    QueueStatus.DONE: "green",
}

INTEGRATION_STATUS_STYLES = {
    IntegrationStatus.ACTIVE: "green",
    IntegrationStatus.INACTIVE: "dim",
    IntegrationStatus.ERROR: "red",
}


def display_sync_result(result: SyncResult) -> None:
    """Display the outcome of a sync cycle.

    Args:
        result: Result returned by the engine
    """
    if result.busy:
        console.print("[yellow]⏳ A sync cycle is already running[/yellow]")
        return

    if result.success:
        console.print("\n[bold green]✅ Sync completed[/bold green]\n")
    else:
        console.print("\n[bold yellow]⚠️  Sync completed with errors[/bold yellow]\n")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", width=20)
    table.add_column("Value", style="green", justify="right")

    table.add_row("Pushed", str(result.pushed))
    table.add_row("Pulled", str(result.pulled))
    table.add_row(
        "Conflicts",
        f"[yellow]{result.conflicts}[/yellow]" if result.conflicts else "0",
    )
    table.add_row("Retrying", str(result.retried))
    table.add_row("Failed", f"[red]{result.failed}[/red]" if result.failed else "0")
    table.add_row("Skipped", str(result.skipped))
    table.add_row("Duration", f"{result.duration_ms} ms")
    console.print(table)

    for error in result.errors:
        console.print(f"  [red]• {error}[/red]")
    if result.conflicts:
        console.print(
            "\n[dim]Review with: homestead-sync conflicts list[/dim]"
        )


def display_queue_stats(stats: Dict[str, int]) -> None:
    """Display outbox counts per status."""
    table = Table(show_header=False)
    table.add_column("Status", style="cyan")
    table.add_column("Items", justify="right")
    for status in QueueStatus:
        style = QUEUE_STATUS_STYLES[status]
        table.add_row(status.value, f"[{style}]{stats.get(status.value, 0)}[/{style}]")
    table.add_row("total", str(stats.get("total", 0)))
    console.print(table)


def display_queue_items(items: List[SyncQueueItem]) -> None:
    """Display outbox items."""
    if not items:
        console.print("[dim]No queue items[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Record", style="cyan")
    table.add_column("Op")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Queued")
    table.add_column("Error", style="red")

    for item in items:
        style = QUEUE_STATUS_STYLES[item.status]
        table.add_row(
            item.id[:8],
            f"{item.store_name}/{item.record_id}",
            item.operation.value,
            f"[{style}]{item.status.value}[/{style}]",
            str(item.attempts),
            format_ms(item.timestamp),
            item.error or "",
        )
    console.print(table)


def display_conflicts(conflicts: List[ConflictLog]) -> None:
    """Display a list of conflicts."""
    if not conflicts:
        console.print("[green]✓ No conflicts[/green]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Record", style="cyan")
    table.add_column("Detected")
    table.add_column("Fields")
    table.add_column("Resolution")

    for conflict in conflicts:
        resolution = (
            conflict.resolution.value if conflict.resolution else "[yellow]open[/yellow]"
        )
        fields = "deleted remotely" if conflict.remote_deleted else ", ".join(
            conflict.differing_fields()
        )
        table.add_row(
            conflict.id,
            f"{conflict.store_name}/{conflict.record_id}",
            format_ms(conflict.detected_at),
            fields,
            resolution,
        )
    console.print(table)


def _render_value(value: object) -> str:
    if value is None:
        return "[dim]-[/dim]"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def display_conflict_detail(conflict: ConflictLog) -> None:
    """Display both versions of a conflicted record side by side."""
    console.print(
        f"\n[bold]Conflict {conflict.id}[/bold] on "
        f"[cyan]{conflict.store_name}/{conflict.record_id}[/cyan]"
    )
    console.print(f"Detected: {format_ms(conflict.detected_at)}")
    if conflict.resolved and conflict.resolution:
        console.print(
            f"Resolved: {conflict.resolution.value} at {format_ms(conflict.resolved_at)}"
        )

    local = conflict.local_version or {}
    remote = {} if conflict.remote_deleted else (conflict.remote_version or {})
    differing = set(conflict.differing_fields())

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Field", style="cyan")
    table.add_column("Local")
    table.add_column("Remote")

    for key in sorted(set(local) | set(remote)):
        marker = "[yellow]*[/yellow] " if key in differing else "  "
        table.add_row(f"{marker}{key}", _render_value(local.get(key)), _render_value(remote.get(key)))
    console.print(table)

    if conflict.remote_deleted:
        console.print("[yellow]The remote copy was deleted[/yellow]")
    if conflict.local_version is None:
        console.print("[yellow]The local copy was deleted[/yellow]")


def display_adapters(adapters: Iterable[IntegrationAdapter]) -> None:
    """Display registered adapters."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Provider", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    for adapter in adapters:
        table.add_row(adapter.id, adapter.name, adapter.type.value)
    console.print(table)


def display_integrations(configs: List[IntegrationConfig]) -> None:
    """Display configured integrations."""
    if not configs:
        console.print("[dim]No integrations configured[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="cyan")
    table.add_column("Provider")
    table.add_column("Status")
    table.add_column("Last sync")
    table.add_column("Errors", justify="right")
    table.add_column("Last error", style="red")

    for config in configs:
        style = INTEGRATION_STATUS_STYLES[config.status]
        table.add_row(
            config.id,
            config.name,
            config.provider,
            f"[{style}]{config.status.value}[/{style}]",
            format_ms(config.last_sync_at),
            str(config.error_count),
            config.last_error_message or "",
        )
    console.print(table)


def display_integration_results(results: List[IntegrationSyncResult]) -> None:
    """Display outcomes of integration syncs."""
    if not results:
        console.print("[dim]Nothing to sync[/dim]")
        return

    icons = {
        IntegrationSyncResult.SUCCESS: "[green]✓[/green]",
        IntegrationSyncResult.FAILURE: "[red]✗[/red]",
        IntegrationSyncResult.SKIPPED: "[dim]–[/dim]",
        IntegrationSyncResult.DISCARDED: "[yellow]⚠[/yellow]",
    }
    for result in results:
        line = (
            f"  {icons.get(result.status, '?')} {result.provider or '?'} "
            f"({result.integration_id[:8]}): {result.status}"
        )
        if result.duration_ms:
            line += f" in {result.duration_ms} ms"
        if result.error:
            line += f" [dim]{result.error}[/dim]"
        if result.materialized and result.materialized.appended:
            line += f", {result.materialized.appended} record(s)"
        console.print(line)


def display_integration_logs(logs: List[IntegrationLog]) -> None:
    """Display integration log entries, newest first."""
    if not logs:
        console.print("[dim]No log entries[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("When")
    table.add_column("Action", style="cyan")
    table.add_column("Status")
    table.add_column("Details")
    table.add_column("Duration", justify="right")

    for entry in logs:
        color = "green" if entry.status == LogStatus.SUCCESS else "red"
        table.add_row(
            format_ms(entry.created_at),
            entry.action.value,
            f"[{color}]{entry.status.value}[/{color}]",
            entry.details,
            f"{entry.duration_ms} ms" if entry.duration_ms is not None else "",
        )
    console.print(table)
