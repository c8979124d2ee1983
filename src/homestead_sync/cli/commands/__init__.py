"""CLI command modules."""

from .conflicts import conflicts_group
from .daemon import daemon_command
from .init import InitializationError, SyncServices, init_command, init_services
from .integrations import integrations_group
from .sync import sync_group

__all__ = [
    "InitializationError",
    "SyncServices",
    "conflicts_group",
    "daemon_command",
    "init_command",
    "init_services",
    "integrations_group",
    "sync_group",
]
