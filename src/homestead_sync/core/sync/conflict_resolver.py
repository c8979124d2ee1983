"""Conflict logging and resolution.

A conflict is recorded when a pulled remote version collides with a local
change that has not been pushed. While unresolved, the record is suspended:
the engine neither pushes it nor applies remote versions to it. Only an
explicit resolution lifts the suspension.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ...database.base import RecordStore
from ...exceptions import ConflictNotFoundError
from ...models import ConflictLog, Resolution, SyncStatus
from ...utils.time_utils import now_ms
from .locks import RecordLocks
from .metadata import SyncMetadata
from .outbox import ChangeInterceptor
from .policy import record_updated_at

logger = logging.getLogger(__name__)

CONFLICT_LOG = "conflict_log"


class ConflictResolver:
    """Record, inspect and resolve sync conflicts."""

    def __init__(
        self,
        store: RecordStore,
        interceptor: ChangeInterceptor,
        metadata: SyncMetadata,
        locks: Optional[RecordLocks] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize conflict resolver.

        Args:
            store: Record store holding records and the conflict log
            interceptor: Outbox used to requeue or cancel changes
            metadata: Sync bookkeeping
            locks: Shared per-record locks
            clock: Millisecond clock
        """
        self.store = store
        self.interceptor = interceptor
        self.metadata = metadata
        self.locks = locks or interceptor.locks
        self._clock = clock

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, conflict_id: str) -> ConflictLog:
        """Load a conflict by id.

        Raises:
            ConflictNotFoundError: If no such conflict exists
        """
        record = self.store.get(CONFLICT_LOG, conflict_id)
        if record is None:
            raise ConflictNotFoundError(f"Conflict {conflict_id} not found")
        return ConflictLog.from_record(record)

    def list_all(self) -> List[ConflictLog]:
        """Every conflict ever logged, oldest first."""
        conflicts = [ConflictLog.from_record(r) for r in self.store.get_all(CONFLICT_LOG)]
        return sorted(conflicts, key=lambda c: c.detected_at)

    def list_unresolved(self) -> List[ConflictLog]:
        """Conflicts awaiting a decision, oldest first."""
        conflicts = [
            ConflictLog.from_record(r)
            for r in self.store.get_all_by_index(CONFLICT_LOG, "resolved", False)
        ]
        return sorted(conflicts, key=lambda c: c.detected_at)

    def unresolved_record_keys(self) -> Set[Tuple[str, str]]:
        """Keys of records suspended by an unresolved conflict."""
        return {conflict.key for conflict in self.list_unresolved()}

    def find_unresolved(self, store_name: str, record_id: str) -> Optional[ConflictLog]:
        """The unresolved conflict for a record, if any."""
        for record in self.store.get_all_by_index(CONFLICT_LOG, "recordId", record_id):
            conflict = ConflictLog.from_record(record)
            if conflict.store_name == store_name and not conflict.resolved:
                return conflict
        return None

    # =========================================================================
    # Logging
    # =========================================================================

    def log_conflict(
        self,
        store_name: str,
        record_id: str,
        local_version: Optional[Dict[str, Any]],
        remote_version: Optional[Dict[str, Any]],
        remote_deleted: bool = False,
    ) -> ConflictLog:
        """Write a new unresolved conflict.

        Neither the local record nor the remote row is modified.
        """
        conflict = ConflictLog(
            store_name=store_name,
            record_id=record_id,
            local_version=local_version,
            remote_version=remote_version,
            remote_deleted=remote_deleted,
            detected_at=self._clock(),
        )
        self.store.put(CONFLICT_LOG, conflict.to_record())
        logger.warning(
            "Conflict detected on %s/%s (local %s, remote %s)",
            store_name,
            record_id,
            record_updated_at(local_version),
            record_updated_at(remote_version),
        )
        return conflict

    def refresh_remote_version(
        self,
        conflict: ConflictLog,
        remote_version: Optional[Dict[str, Any]],
        remote_deleted: bool = False,
    ) -> ConflictLog:
        """Replace a suspended conflict's remote side with a newer pull."""
        conflict.remote_version = remote_version
        conflict.remote_deleted = remote_deleted
        self.store.put(CONFLICT_LOG, conflict.to_record())
        logger.info(
            "Updated remote side of conflict %s on %s/%s",
            conflict.id,
            conflict.store_name,
            conflict.record_id,
        )
        return conflict

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve_conflict(
        self, conflict_id: str, resolution: Resolution
    ) -> ConflictLog:
        """Settle a conflict by keeping one side.

        ``local_wins`` rewrites the local version with a fresh ``updatedAt``
        and queues it, so the next push overwrites the remote. ``remote_wins``
        writes the remote version locally as synced and drops queued local
        changes for the record.

        Args:
            conflict_id: Conflict to resolve
            resolution: Which side wins

        Returns:
            The resolved conflict. Resolving twice returns the first outcome.

        Raises:
            ConflictNotFoundError: If no such conflict exists
        """
        resolution = Resolution(resolution)
        conflict = self.get(conflict_id)
        if conflict.resolved:
            logger.info(
                "Conflict %s already resolved as %s",
                conflict_id,
                conflict.resolution.value if conflict.resolution else "unknown",
            )
            return conflict

        async with self.locks.hold(conflict.store_name, conflict.record_id):
            conflict = self.get(conflict_id)
            if conflict.resolved:
                return conflict

            remote_updated_at = record_updated_at(conflict.remote_version)
            if resolution == Resolution.LOCAL_WINS:
                self._keep_local(conflict, remote_updated_at)
            else:
                self._keep_remote(conflict, remote_updated_at)

            conflict.resolved = True
            conflict.resolved_at = self._clock()
            conflict.resolution = resolution
            self.store.put(CONFLICT_LOG, conflict.to_record())

        logger.info(
            "Resolved conflict %s on %s/%s: %s",
            conflict.id,
            conflict.store_name,
            conflict.record_id,
            resolution.value,
        )
        return conflict

    def _keep_local(self, conflict: ConflictLog, remote_updated_at: int) -> None:
        store_name, record_id = conflict.key
        # The live record includes edits made after the conflict was logged
        local = self.store.get(store_name, record_id) or conflict.local_version

        # Conditional pushes compare against the remote version we overrule
        if conflict.remote_version is not None or conflict.remote_deleted:
            self.metadata.set_last_synced(store_name, record_id, remote_updated_at)

        if local is None:
            self.interceptor.commit_local_write(store_name, record_id, None)
            return

        version = dict(local)
        version["updatedAt"] = max(
            self._clock(), remote_updated_at + 1, record_updated_at(local)
        )
        version["syncStatus"] = SyncStatus.PENDING.value
        self.interceptor.commit_local_write(store_name, record_id, version)

    def _keep_remote(self, conflict: ConflictLog, remote_updated_at: int) -> None:
        store_name, record_id = conflict.key
        if conflict.remote_deleted or conflict.remote_version is None:
            self.store.delete(store_name, record_id)
        else:
            version = dict(conflict.remote_version)
            version["syncStatus"] = SyncStatus.SYNCED.value
            self.store.put(store_name, version)

        cancelled = self.interceptor.cancel_for(store_name, record_id)
        if cancelled:
            logger.debug(
                "Dropped %d queued change(s) for %s/%s", cancelled, store_name, record_id
            )
        self.metadata.set_last_synced(store_name, record_id, remote_updated_at)
