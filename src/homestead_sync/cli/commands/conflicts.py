"""Conflict commands: inspect and resolve sync conflicts."""

import asyncio
import logging

import click
from rich.console import Console

from ...exceptions import ConflictNotFoundError
from ...models import Resolution
from ..display import display_conflict_detail, display_conflicts
from .init import load_services

console = Console()
logger = logging.getLogger(__name__)


@click.group("conflicts")
def conflicts_group() -> None:
    """Review records changed on both sides."""
    pass


@conflicts_group.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include resolved conflicts")
@click.pass_context
def conflicts_list(ctx: click.Context, show_all: bool) -> None:
    """List unresolved conflicts."""
    resolver = load_services(ctx).resolver
    display_conflicts(resolver.list_all() if show_all else resolver.list_unresolved())


@conflicts_group.command("show")
@click.argument("conflict_id")
@click.pass_context
def conflicts_show(ctx: click.Context, conflict_id: str) -> None:
    """Show both versions of a conflicted record."""
    try:
        conflict = load_services(ctx).resolver.get(conflict_id)
    except ConflictNotFoundError as e:
        raise click.ClickException(str(e))
    display_conflict_detail(conflict)


@conflicts_group.command("resolve")
@click.argument("conflict_id")
@click.option(
    "--use",
    "side",
    required=True,
    type=click.Choice(["local", "remote"]),
    help="Which version to keep",
)
@click.pass_context
def conflicts_resolve(ctx: click.Context, conflict_id: str, side: str) -> None:
    """Resolve a conflict by keeping the local or the remote version.

    Examples:
        homestead-sync conflicts resolve <id> --use local
    """
    resolution = Resolution.LOCAL_WINS if side == "local" else Resolution.REMOTE_WINS
    resolver = load_services(ctx).resolver
    try:
        conflict = asyncio.run(resolver.resolve_conflict(conflict_id, resolution))
    except ConflictNotFoundError as e:
        raise click.ClickException(str(e))

    resolved_as = conflict.resolution.value if conflict.resolution else resolution.value
    console.print(
        f"[green]✓ {conflict.store_name}/{conflict.record_id} resolved: "
        f"{resolved_as}[/green]"
    )
