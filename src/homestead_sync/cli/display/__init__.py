"""CLI display and formatting utilities."""

from .formatters import (
    display_adapters,
    display_conflict_detail,
    display_conflicts,
    display_integration_logs,
    display_integration_results,
    display_integrations,
    display_queue_items,
    display_queue_stats,
    display_sync_result,
)

__all__ = [
    "display_adapters",
    "display_conflict_detail",
    "display_conflicts",
    "display_integration_logs",
    "display_integration_results",
    "display_integrations",
    "display_queue_items",
    "display_queue_stats",
    "display_sync_result",
]
