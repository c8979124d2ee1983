"""Append-only integration activity log."""

import logging
from typing import Callable, List, Optional

from ...database.base import RecordStore
from ...models import IntegrationLog, LogAction, LogStatus
from ...utils.time_utils import now_ms

logger = logging.getLogger(__name__)

INTEGRATION_LOGS = "integration_logs"


class IntegrationLogService:
    """Write and read integration log entries."""

    def __init__(self, store: RecordStore, clock: Callable[[], int] = now_ms) -> None:
        """Initialize with the record store holding ``integration_logs``."""
        self.store = store
        self._clock = clock

    def log(
        self,
        integration_id: str,
        action: LogAction,
        status: LogStatus,
        details: str,
        duration_ms: Optional[int] = None,
    ) -> IntegrationLog:
        """Append one entry.

        Args:
            integration_id: Integration the entry belongs to
            action: sync, error or config_change
            status: success or failure
            details: Human readable message
            duration_ms: Optional duration of the logged operation

        Returns:
            The stored entry
        """
        entry = IntegrationLog(
            integration_id=integration_id,
            action=action,
            status=status,
            details=details,
            duration_ms=duration_ms,
            created_at=self._clock(),
        )
        self.store.put(INTEGRATION_LOGS, entry.to_record())
        level = logging.INFO if status == LogStatus.SUCCESS else logging.WARNING
        logger.log(level, "[%s] %s/%s: %s", integration_id, action.value, status.value, details)
        return entry

    def get_logs(
        self, integration_id: str, limit: Optional[int] = None
    ) -> List[IntegrationLog]:
        """Entries for one integration, newest first."""
        entries = [
            IntegrationLog.from_record(record)
            for record in self.store.get_all_by_index(
                INTEGRATION_LOGS, "integrationId", integration_id
            )
        ]
        # Equal timestamps come back in insertion order; reversing keeps ties newest first
        entries.reverse()
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit] if limit else entries
