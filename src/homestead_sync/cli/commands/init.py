"""Initialization command and service wiring for the Homestead sync core.

This module provides simple initialization functions that return service instances:
- init_db() -> DatabaseService
- init_remote() -> HttpRemoteReplica or None
- init_services() -> SyncServices bundle shared by every command
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from ...config import Config
from ...core.integrations import (
    AdapterRegistry,
    IntegrationOrchestrator,
    default_registry,
)
from ...core.sync import (
    ChangeInterceptor,
    ConflictResolver,
    HttpRemoteReplica,
    RecordLocks,
    RemoteReplica,
    RetryPolicy,
    SyncCycleEngine,
    SyncMetadata,
)
from ...database import DatabaseService, RecordStore

console = Console()
logger = logging.getLogger(__name__)


class InitializationError(Exception):
    """Raised when initialization fails."""

    pass


@dataclass
class SyncServices:
    """Everything a command needs, wired to one record store."""

    config: Config
    store: RecordStore
    locks: RecordLocks
    interceptor: ChangeInterceptor
    metadata: SyncMetadata
    resolver: ConflictResolver
    orchestrator: IntegrationOrchestrator
    remote: Optional[RemoteReplica] = None
    engine: Optional[SyncCycleEngine] = None

    def require_engine(self) -> SyncCycleEngine:
        """The sync engine.

        Raises:
            InitializationError: If no remote replica is configured
        """
        if self.engine is None:
            raise InitializationError(
                "No remote replica configured; set HOMESTEAD_SYNC_REMOTE_URL"
            )
        return self.engine

    def close(self) -> None:
        """Release the record store."""
        close = getattr(self.store, "close", None)
        if callable(close):
            close()


def init_db(config: Optional[Config] = None) -> DatabaseService:
    """Initialize or get DatabaseService instance.

    Args:
        config: Application configuration (creates new if not provided)

    Returns:
        DatabaseService instance

    Raises:
        InitializationError: If database cannot be initialized
    """
    if config is None:
        config = Config()

    try:
        db_service = DatabaseService(db_path=config.database_path)

        if not db_service.is_initialized():
            logger.info("Initializing database schema...")
            db_service.init_db()

        stats = db_service.get_statistics()
        logger.debug(
            "Database connected: %d collection(s)", len(stats["collections"])
        )
        return db_service

    except Exception as e:
        logger.exception("Database initialization failed")
        raise InitializationError(f"Database initialization failed: {e}") from e


def init_remote(config: Optional[Config] = None) -> Optional[HttpRemoteReplica]:
    """Build the remote replica client, or None when no URL is configured."""
    if config is None:
        config = Config()

    if not config.remote_configured:
        logger.debug("No remote replica configured, running offline only")
        return None

    return HttpRemoteReplica(
        base_url=config.remote_url or "",
        token=config.remote_token,
        owner=config.owner,
        timeout=config.network_timeout,
    )


def init_services(
    config: Optional[Config] = None,
    store: Optional[RecordStore] = None,
    remote: Optional[RemoteReplica] = None,
    registry: Optional[AdapterRegistry] = None,
) -> SyncServices:
    """Wire the sync core around one record store.

    Args:
        config: Application configuration (creates new if not provided)
        store: Record store; defaults to the configured SQLite database
        remote: Remote replica; defaults to the configured HTTP replica
        registry: Adapter registry; defaults to the built-in adapters

    Returns:
        SyncServices bundle

    Raises:
        InitializationError: If the database cannot be initialized
    """
    if config is None:
        config = Config()
    if store is None:
        store = init_db(config)
    if remote is None:
        remote = init_remote(config)

    locks = RecordLocks()
    interceptor = ChangeInterceptor(store, locks)
    metadata = SyncMetadata(store)
    resolver = ConflictResolver(store, interceptor, metadata, locks)
    orchestrator = IntegrationOrchestrator(
        store,
        registry or default_registry(),
        locks=locks,
        fetch_timeout=config.integration_timeout,
    )

    engine = None
    if remote is not None:
        engine = SyncCycleEngine(
            store,
            remote,
            interceptor,
            resolver,
            metadata,
            locks=locks,
            retry_policy=RetryPolicy(
                max_attempts=config.max_attempts,
                base_delay=config.backoff_base,
                max_delay=config.backoff_cap,
            ),
            network_timeout=config.network_timeout,
        )

    return SyncServices(
        config=config,
        store=store,
        locks=locks,
        interceptor=interceptor,
        metadata=metadata,
        resolver=resolver,
        orchestrator=orchestrator,
        remote=remote,
        engine=engine,
    )


def check_services(config: Config) -> Dict[str, Any]:
    """Collect status of the local store and sync state.

    Args:
        config: Application configuration

    Returns:
        Dictionary with per-area status

    Raises:
        InitializationError: If the database cannot be initialized
    """
    services = init_services(config)
    try:
        stats = services.store.get_statistics()  # type: ignore[attr-defined]
        queue = services.interceptor.stats()
        return {
            "database": {
                "status": "success",
                "details": f"{sum(stats['collections'].values())} records in "
                f"{config.database_path}",
            },
            "remote": {
                "status": "success" if services.remote is not None else "warning",
                "details": config.remote_url or "not configured (offline only)",
            },
            "outbox": {
                "status": "warning" if queue["failed"] else "success",
                "details": f"{queue['pending']} pending, {queue['failed']} failed",
            },
            "conflicts": {
                "status": "warning" if services.resolver.list_unresolved() else "success",
                "details": f"{len(services.resolver.list_unresolved())} unresolved",
            },
            "integrations": {
                "status": "success",
                "details": f"{len(services.orchestrator.list_configs())} configured",
            },
        }
    finally:
        services.close()


def _display_results_table(results: Dict[str, Any]) -> None:
    """Display check results in a formatted table."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Area", style="cyan", width=15)
    table.add_column("Status", width=12)
    table.add_column("Details", style="dim")

    icons = {"success": ("✓", "green"), "warning": ("⚠", "yellow")}
    for area, result in results.items():
        icon, color = icons.get(result["status"], ("✗", "red"))
        table.add_row(
            area.capitalize(),
            f"[{color}]{icon} {result['status']}[/{color}]",
            result["details"],
        )

    console.print(table)


@click.command("init")
def init_command() -> None:
    """Create the local database and show sync status.

    Examples:
        homestead-sync init
    """
    console.print("\n[bold cyan]🔧 Initializing Homestead sync[/bold cyan]\n")

    try:
        config = Config()
        results = check_services(config)
        _display_results_table(results)
        console.print("\n[bold green]✓ Local store ready[/bold green]\n")

    except InitializationError as e:
        console.print(f"\n[red]✗ Initialization failed: {e}[/red]\n")
        raise click.ClickException(str(e))
    except Exception as e:
        logger.exception("Unexpected error during initialization")
        console.print(f"\n[red]✗ Unexpected error: {e}[/red]\n")
        raise click.ClickException(str(e))


def load_services(ctx: click.Context) -> SyncServices:
    """Services for a command, built once per invocation.

    A ``SyncServices`` passed as the context object is used as is.

    Raises:
        click.ClickException: If initialization fails
    """
    if isinstance(ctx.obj, SyncServices):
        return ctx.obj

    config = ctx.obj if isinstance(ctx.obj, Config) else Config()
    try:
        services = init_services(config)
    except InitializationError as e:
        raise click.ClickException(str(e))

    ctx.obj = services
    ctx.call_on_close(services.close)
    return services
