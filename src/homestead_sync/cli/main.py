"""Command-line interface for the Homestead sync core.

This is the main entry point that delegates to command modules.
"""

from pathlib import Path
from typing import Any, Optional

import click

from ..config import Config
from ..utils.logging_config import configure_third_party_loggers, setup_logging
from .commands import (
    conflicts_group,
    daemon_command,
    init_command,
    integrations_group,
    sync_group,
)


@click.group()
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Set logging level",
)
@click.option("--log-file", type=click.Path(), help="Log to file")
@click.pass_context
def cli(ctx: Any, log_level: str, log_file: Optional[str]) -> None:
    """Homestead sync.

    Offline-first replication and external integrations for Homestead.
    """
    setup_logging(log_level=log_level, log_file=Path(log_file) if log_file else None)
    configure_third_party_loggers()

    if ctx.obj is None:
        ctx.obj = Config()


# Register command groups and commands
cli.add_command(init_command)
cli.add_command(sync_group)
cli.add_command(conflicts_group)
cli.add_command(integrations_group)
cli.add_command(daemon_command)


if __name__ == "__main__":
    cli()
