"""Sync cycle engine.

One cycle pushes queued local changes to the remote replica, then pulls
remote changes since the stored cursor and applies them locally:

1. Push: due queue items, collapsed per record, uploaded one at a time
2. Pull: remote rows after the cursor, applied, skipped or logged as
   conflicts, with the cursor advanced as rows are handled

At most one cycle runs at a time.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ...database.base import RecordStore
from ...exceptions import (
    ConflictDetected,
    CycleBusyError,
    PermanentValidationError,
    RemoteChangedError,
    TransientNetworkError,
)
from ...models import QueueOperation, QueueStatus, SyncQueueItem, SyncStatus
from ...utils.time_utils import now_ms
from .conflict_resolver import ConflictResolver
from .locks import RecordLocks
from .metadata import SyncMetadata
from .outbox import ChangeInterceptor, collapse_pending
from .policy import (
    RemoteDecision,
    RetryPolicy,
    classify_remote,
    is_own_write,
    record_updated_at,
)
from .remote import RemoteReplica, RemoteRow

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Result of one sync cycle."""

    trigger: str = "manual"
    pushed: int = 0
    pulled: int = 0
    conflicts: int = 0
    failed: int = 0
    retried: int = 0
    skipped: int = 0
    busy: bool = False
    duration_ms: int = 0
    errors: List[str] = dataclass_field(default_factory=list)

    @classmethod
    def busy_result(cls, trigger: str) -> "SyncResult":
        """Result returned when another cycle is already running."""
        return cls(trigger=trigger, busy=True)

    @property
    def success(self) -> bool:
        """Whether the cycle ran without cycle-level errors."""
        return not self.busy and not self.errors

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        logger.error(error)

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of the cycle."""
        return {
            "trigger": self.trigger,
            "success": self.success,
            "busy": self.busy,
            "pushed": self.pushed,
            "pulled": self.pulled,
            "conflicts": self.conflicts,
            "failed": self.failed,
            "retried": self.retried,
            "skipped": self.skipped,
            "errors": len(self.errors),
            "duration_ms": self.duration_ms,
        }


class SyncCycleEngine:
    """Run push/pull cycles between the local store and a remote replica."""

    def __init__(
        self,
        store: RecordStore,
        remote: RemoteReplica,
        interceptor: ChangeInterceptor,
        resolver: ConflictResolver,
        metadata: SyncMetadata,
        locks: Optional[RecordLocks] = None,
        retry_policy: Optional[RetryPolicy] = None,
        network_timeout: float = 15.0,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize sync cycle engine.

        Args:
            store: Local record store
            remote: Remote replica client
            interceptor: Outbox of local changes
            resolver: Conflict log and resolution
            metadata: Pull cursor and last-known-synced versions
            locks: Shared per-record locks
            retry_policy: Backoff for transient push failures
            network_timeout: Seconds before a remote call counts as failed
            clock: Millisecond clock
        """
        self.store = store
        self.remote = remote
        self.interceptor = interceptor
        self.resolver = resolver
        self.metadata = metadata
        self.locks = locks or interceptor.locks
        self.retry_policy = retry_policy or RetryPolicy()
        self.network_timeout = network_timeout
        self._clock = clock
        self._cycle_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        """Whether a cycle is in flight."""
        return self._cycle_lock.locked()

    def _ensure_idle(self) -> None:
        if self._cycle_lock.locked():
            raise CycleBusyError("A sync cycle is already in progress")

    async def run_sync_cycle(
        self, trigger: str = "manual", wait: bool = False
    ) -> SyncResult:
        """Run one push/pull cycle.

        Args:
            trigger: What started the cycle (manual, timer, online, force)
            wait: Queue behind a running cycle instead of returning busy

        Returns:
            SyncResult with per-phase counts
        """
        if not wait:
            try:
                self._ensure_idle()
            except CycleBusyError as e:
                logger.info("Skipping %s sync: %s", trigger, e)
                return SyncResult.busy_result(trigger)

        async with self._cycle_lock:
            return await self._run_cycle(trigger)

    async def _run_cycle(self, trigger: str) -> SyncResult:
        result = SyncResult(trigger=trigger)
        started = time.monotonic()
        logger.info("Starting sync cycle (%s)", trigger)

        try:
            self.interceptor.reset_stale_processing()
            suspended = self.resolver.unresolved_record_keys()

            await self._push_phase(result, suspended)
            await self._pull_phase(result)
        except Exception as e:
            self._handle_cycle_error(result, e)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("Sync cycle complete: %s", result.get_summary())
        return result

    def _handle_cycle_error(self, result: SyncResult, error: Exception) -> None:
        """Handle an unexpected error that aborted the cycle."""
        error_msg = f"Sync cycle failed: {error}"
        result.errors.append(error_msg)
        logger.exception(error_msg)

    # =========================================================================
    # Push
    # =========================================================================

    async def _push_phase(
        self, result: SyncResult, suspended: Set[Tuple[str, str]]
    ) -> None:
        """Upload every due local change."""
        latest, superseded = collapse_pending(self.interceptor.due_items())
        for stale in superseded:
            self.interceptor.mark_done(stale)

        if latest:
            logger.info("Pushing %d queued change(s)", len(latest))

        for item in latest:
            if item.key in suspended:
                logger.debug(
                    "Holding %s/%s until its conflict is resolved",
                    item.store_name,
                    item.record_id,
                )
                result.skipped += 1
                continue
            await self._push_item(item, result)

    async def _push_item(self, item: SyncQueueItem, result: SyncResult) -> None:
        """Upload one queued change and record the outcome on the item."""
        async with self.locks.hold(item.store_name, item.record_id):
            record = self.store.get(item.store_name, item.record_id)
            base_updated_at = self.metadata.get_last_synced(
                item.store_name, item.record_id
            )
            item.status = QueueStatus.PROCESSING
            self.interceptor.save(item)

        deleted = item.operation == QueueOperation.DELETE or record is None
        if deleted:
            data = None
            updated_at = max(item.timestamp, (base_updated_at or 0) + 1)
        else:
            data = dict(record)
            data["syncStatus"] = SyncStatus.SYNCED.value
            updated_at = record_updated_at(record)

        try:
            await asyncio.wait_for(
                self.remote.push(
                    item.store_name,
                    item.record_id,
                    data,
                    updated_at,
                    deleted=deleted,
                    base_updated_at=base_updated_at,
                ),
                timeout=self.network_timeout,
            )
        except RemoteChangedError as e:
            # Leave the change queued; the pull phase decides on a conflict.
            logger.info("Deferred push of %s/%s: %s", item.store_name, item.record_id, e)
            item.status = QueueStatus.PENDING
            self.interceptor.save(item)
            result.skipped += 1
            return
        except PermanentValidationError as e:
            logger.error(
                "Remote rejected %s/%s: %s", item.store_name, item.record_id, e
            )
            self.interceptor.mark_failed(item, str(e))
            result.failed += 1
            return
        except (TransientNetworkError, asyncio.TimeoutError) as e:
            message = str(e) or f"Push timed out after {self.network_timeout}s"
            self._schedule_retry(item, message, result)
            return

        async with self.locks.hold(item.store_name, item.record_id):
            self.interceptor.mark_done(item)
            self.interceptor.settle_superseded(item)
            self.metadata.set_last_synced(item.store_name, item.record_id, updated_at)
            if not deleted:
                current = self.store.get(item.store_name, item.record_id)
                # Only flag synced when nobody rewrote the record during the push
                if current is not None and record_updated_at(current) == updated_at:
                    current["syncStatus"] = SyncStatus.SYNCED.value
                    self.store.put(item.store_name, current)

        result.pushed += 1
        logger.debug("Pushed %s/%s", item.store_name, item.record_id)

    def _schedule_retry(
        self, item: SyncQueueItem, message: str, result: SyncResult
    ) -> None:
        """Back off a transient failure, or give up once attempts run out."""
        item.attempts += 1
        if self.retry_policy.exhausted(item.attempts):
            self.interceptor.mark_failed(
                item, f"{message} (gave up after {item.attempts} attempts)"
            )
            result.failed += 1
            logger.warning(
                "Giving up on %s/%s after %d attempts",
                item.store_name,
                item.record_id,
                item.attempts,
            )
            return

        delay = self.retry_policy.delay_for(item.attempts)
        item.status = QueueStatus.PENDING
        item.error = message
        item.next_attempt_at = self._clock() + int(delay * 1000)
        self.interceptor.save(item)
        result.retried += 1
        logger.info(
            "Push of %s/%s failed (%s), retrying in %.0fs",
            item.store_name,
            item.record_id,
            message,
            delay,
        )

    # =========================================================================
    # Pull
    # =========================================================================

    async def _pull_phase(self, result: SyncResult) -> None:
        """Fetch remote changes after the cursor and apply them."""
        cursor = self.metadata.get_cursor()
        try:
            rows = await asyncio.wait_for(
                self.remote.pull(cursor), timeout=self.network_timeout
            )
        except asyncio.TimeoutError:
            result.add_error(f"Pull timed out after {self.network_timeout}s")
            return
        except (TransientNetworkError, PermanentValidationError) as e:
            result.add_error(f"Pull failed: {e}")
            return

        if rows:
            logger.info("Pulled %d remote change(s) since %d", len(rows), cursor)

        newest = cursor
        try:
            for row in sorted(rows, key=lambda r: r.updated_at):
                try:
                    if await self._apply_row(row):
                        result.pulled += 1
                    else:
                        result.skipped += 1
                except ConflictDetected as conflict:
                    result.conflicts += 1
                    logger.warning("%s", conflict)
                newest = max(newest, row.updated_at)
        finally:
            if newest > cursor:
                self.metadata.set_cursor(newest)

    async def _apply_row(self, row: RemoteRow) -> bool:
        """Apply one remote row under its record lock.

        Returns:
            True if local state changed

        Raises:
            ConflictDetected: If the row collides with an unpushed local change
        """
        remote_version = row.as_record()
        async with self.locks.hold(row.collection, row.id):
            suspended = self.resolver.find_unresolved(row.collection, row.id)
            if suspended is not None:
                self.resolver.refresh_remote_version(
                    suspended, remote_version, remote_deleted=row.deleted
                )
                return False

            local = self.store.get(row.collection, row.id)
            outstanding = self.interceptor.outstanding_items(row.collection, row.id)
            if outstanding and is_own_write(
                local,
                remote_version,
                remote_deleted=row.deleted,
                pending_delete=outstanding[-1].operation == QueueOperation.DELETE,
            ):
                self._acknowledge(row, local)
                return False

            decision = classify_remote(
                local,
                remote_version,
                remote_deleted=row.deleted,
                has_pending_change=bool(outstanding),
                last_synced_at=self.metadata.get_last_synced(row.collection, row.id),
            )

            if decision == RemoteDecision.CONFLICT:
                conflict = self.resolver.log_conflict(
                    row.collection,
                    row.id,
                    local_version=local,
                    remote_version=remote_version,
                    remote_deleted=row.deleted,
                )
                raise ConflictDetected(conflict)

            if decision == RemoteDecision.SKIP:
                return False

            if row.deleted:
                self.store.delete(row.collection, row.id)
            else:
                remote_version["syncStatus"] = SyncStatus.SYNCED.value
                self.store.put(row.collection, remote_version)
            self.metadata.set_last_synced(row.collection, row.id, row.updated_at)
            return True

    def _acknowledge(self, row: RemoteRow, local: Optional[Dict[str, Any]]) -> None:
        """Settle queued changes the remote already holds."""
        settled = self.interceptor.acknowledge(row.collection, row.id)
        self.metadata.set_last_synced(row.collection, row.id, row.updated_at)
        if local is not None and local.get("syncStatus") != SyncStatus.SYNCED.value:
            local["syncStatus"] = SyncStatus.SYNCED.value
            self.store.put(row.collection, local)
        logger.info(
            "Remote already holds %s/%s; settled %d queued change(s)",
            row.collection,
            row.id,
            settled,
        )
