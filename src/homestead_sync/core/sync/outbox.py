"""Change interceptor and durable outbox.

Every local write to a replicated collection leaves a ``SyncQueueItem`` in
the ``sync_queue`` collection of the same record store, so a committed write
cannot be lost between the write and its upload.
"""

import logging
from itertools import groupby
from typing import Callable, Dict, List, Optional, Set, Tuple

from ...database.base import Record, RecordStore
from ...models import QueueOperation, QueueStatus, SyncQueueItem, SyncStatus, new_id
from ...utils.time_utils import now_ms
from .locks import RecordLocks
from .policy import record_updated_at

logger = logging.getLogger(__name__)

SYNC_QUEUE = "sync_queue"

# Collections owned by the sync core itself; never replicated.
LOCAL_ONLY_COLLECTIONS = frozenset(
    {
        "sync_queue",
        "conflict_log",
        "sync_meta",
        "integrations",
        "integration_logs",
        "sensor_devices",
        "sensor_readings",
        "weather_observations",
    }
)


def collapse_pending(
    items: List[SyncQueueItem],
) -> Tuple[List[SyncQueueItem], List[SyncQueueItem]]:
    """Keep only the latest item per ``(store_name, record_id)``.

    Args:
        items: Queue items in any order

    Returns:
        Tuple of (latest item per key, superseded items)
    """
    ordered = sorted(items, key=lambda i: (i.store_name, i.record_id, i.timestamp))
    latest: List[SyncQueueItem] = []
    superseded: List[SyncQueueItem] = []
    for _, group in groupby(ordered, key=lambda i: i.key):
        group_items = list(group)
        latest.append(group_items[-1])
        superseded.extend(group_items[:-1])
    return latest, superseded


class ChangeInterceptor:
    """Record local changes into the outbox and manage queued items."""

    def __init__(
        self,
        store: RecordStore,
        locks: Optional[RecordLocks] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the interceptor.

        Args:
            store: Record store holding both the data and the queue
            locks: Shared per-record locks
            clock: Millisecond clock, injectable for tests
        """
        self.store = store
        self.locks = locks or RecordLocks()
        self._clock = clock

    # =========================================================================
    # Capturing changes
    # =========================================================================

    def _plan_change(
        self, store_name: str, operation: QueueOperation, record_id: str
    ) -> Tuple[SyncQueueItem, List[str]]:
        """Build the queue item for a change without writing it.

        Returns:
            Tuple of (item to save, ids of pending items it absorbs)
        """
        now = self._clock()
        pending = [
            item
            for item in self._items_for(store_name, record_id)
            if item.status == QueueStatus.PENDING
        ]

        if pending:
            pending.sort(key=lambda i: i.timestamp)
            item = pending[-1]
            item.operation = operation
            item.timestamp = max(now, item.timestamp)
            item.attempts = 0
            item.error = None
            item.next_attempt_at = None
            logger.debug(
                "Coalescing %s on %s/%s into queue item %s",
                operation.value,
                store_name,
                record_id,
                item.id,
            )
            return item, [stale.id for stale in pending[:-1]]

        item = SyncQueueItem(
            store_name=store_name,
            record_id=record_id,
            operation=operation,
            timestamp=now,
        )
        logger.debug(
            "Queuing %s on %s/%s as %s", operation.value, store_name, record_id, item.id
        )
        return item, []

    def record_change(
        self, store_name: str, operation: QueueOperation, record_id: str
    ) -> Optional[SyncQueueItem]:
        """Enqueue a committed local change.

        An existing pending item for the same record absorbs the change, so
        repeated edits before a sync produce a single upload.

        Args:
            store_name: Collection that was written
            operation: ``put`` or ``delete``
            record_id: Id of the written record

        Returns:
            The queued item, or None for local-only collections
        """
        if store_name in LOCAL_ONLY_COLLECTIONS:
            return None

        item, absorbed = self._plan_change(
            store_name, QueueOperation(operation), record_id
        )
        self.store.write_many(
            puts=[(SYNC_QUEUE, item.to_record())],
            deletes=[(SYNC_QUEUE, stale_id) for stale_id in absorbed],
        )
        return item

    def commit_local_write(
        self, store_name: str, record_id: str, record: Optional[Record]
    ) -> Optional[SyncQueueItem]:
        """Write or delete a record together with its queue item.

        The record and the outbox entry go to the store in one ``write_many``
        call, so neither is committed without the other.

        Args:
            store_name: Collection to write
            record_id: Id of the record
            record: New record body, or None to delete

        Returns:
            The queued item, or None for local-only collections
        """
        puts: List[Tuple[str, Record]] = []
        deletes: List[Tuple[str, str]] = []
        if record is None:
            operation = QueueOperation.DELETE
            deletes.append((store_name, record_id))
        else:
            operation = QueueOperation.PUT
            puts.append((store_name, record))

        item = None
        if store_name not in LOCAL_ONLY_COLLECTIONS:
            item, absorbed = self._plan_change(store_name, operation, record_id)
            puts.append((SYNC_QUEUE, item.to_record()))
            deletes.extend((SYNC_QUEUE, stale_id) for stale_id in absorbed)

        self.store.write_many(puts=puts, deletes=deletes)
        return item

    async def put_record(self, store_name: str, record: Record) -> Record:
        """Write a record locally and queue it for replication.

        ``updatedAt`` never moves backwards and ``syncStatus`` becomes pending.

        Args:
            store_name: Collection to write
            record: Record body; an ``id`` is generated when missing

        Returns:
            The record as stored
        """
        record_id = str(record.get("id") or new_id())
        async with self.locks.hold(store_name, record_id):
            current = self.store.get(store_name, record_id)
            now = self._clock()
            requested = record.get("updatedAt")

            stamped = dict(record)
            stamped["id"] = record_id
            stamped["createdAt"] = (
                current.get("createdAt", now) if current else record.get("createdAt", now)
            )
            stamped["updatedAt"] = max(
                int(requested) if requested is not None else now,
                record_updated_at(current),
            )
            stamped["syncStatus"] = SyncStatus.PENDING.value

            self.commit_local_write(store_name, record_id, stamped)
        return stamped

    async def delete_record(self, store_name: str, record_id: str) -> None:
        """Delete a record locally and queue a tombstone for replication."""
        async with self.locks.hold(store_name, record_id):
            self.commit_local_write(store_name, record_id, None)

    # =========================================================================
    # Queue access
    # =========================================================================

    def save(self, item: SyncQueueItem) -> None:
        """Persist a queue item."""
        self.store.put(SYNC_QUEUE, item.to_record())

    def get_item(self, item_id: str) -> Optional[SyncQueueItem]:
        """Load one queue item by id."""
        record = self.store.get(SYNC_QUEUE, item_id)
        return SyncQueueItem.from_record(record) if record else None

    def _items_for(self, store_name: str, record_id: str) -> List[SyncQueueItem]:
        return [
            SyncQueueItem.from_record(record)
            for record in self.store.get_all_by_index(SYNC_QUEUE, "recordId", record_id)
            if record.get("storeName") == store_name
        ]

    def list_items(self, status: Optional[QueueStatus] = None) -> List[SyncQueueItem]:
        """List queue items, oldest first, optionally filtered by status."""
        if status is None:
            records = self.store.get_all(SYNC_QUEUE)
        else:
            records = self.store.get_all_by_index(
                SYNC_QUEUE, "status", QueueStatus(status).value
            )
        items = [SyncQueueItem.from_record(record) for record in records]
        return sorted(items, key=lambda i: i.timestamp)

    def due_items(self, now: Optional[int] = None) -> List[SyncQueueItem]:
        """Pending items whose backoff has elapsed."""
        now = self._clock() if now is None else now
        return [i for i in self.list_items(QueueStatus.PENDING) if i.is_due(now)]

    def outstanding_items(self, store_name: str, record_id: str) -> List[SyncQueueItem]:
        """Undelivered items for one record, oldest first."""
        items = [
            item
            for item in self._items_for(store_name, record_id)
            if item.status != QueueStatus.DONE
        ]
        return sorted(items, key=lambda i: i.timestamp)

    def has_outstanding(self, store_name: str, record_id: str) -> bool:
        """Whether a local change for the record has not been pushed yet."""
        return bool(self.outstanding_items(store_name, record_id))

    def outstanding_keys(self) -> Set[Tuple[str, str]]:
        """Keys of every record with an unpushed change."""
        return {
            item.key for item in self.list_items() if item.status != QueueStatus.DONE
        }

    def stats(self) -> Dict[str, int]:
        """Count queue items per status."""
        counts = {status.value: 0 for status in QueueStatus}
        for item in self.list_items():
            counts[item.status.value] += 1
        counts["total"] = sum(counts[status.value] for status in QueueStatus)
        return counts

    # =========================================================================
    # Item lifecycle
    # =========================================================================

    def mark_done(self, item: SyncQueueItem) -> None:
        """Mark an item as delivered."""
        item.status = QueueStatus.DONE
        item.error = None
        item.next_attempt_at = None
        self.save(item)

    def mark_failed(self, item: SyncQueueItem, error: str) -> None:
        """Mark an item as permanently failed."""
        item.status = QueueStatus.FAILED
        item.error = error
        item.next_attempt_at = None
        self.save(item)

    def settle_superseded(self, delivered: SyncQueueItem) -> int:
        """Mark done the record's older and failed items once a newer push landed.

        Items queued alongside or after ``delivered`` stay pending.

        Returns:
            Number of items settled
        """
        settled = 0
        for item in self.outstanding_items(delivered.store_name, delivered.record_id):
            if item.id == delivered.id:
                continue
            if item.status == QueueStatus.FAILED or item.timestamp < delivered.timestamp:
                self.mark_done(item)
                settled += 1
        if settled:
            logger.debug(
                "Settled %d superseded item(s) for %s/%s",
                settled,
                delivered.store_name,
                delivered.record_id,
            )
        return settled

    def acknowledge(self, store_name: str, record_id: str) -> int:
        """Mark every undelivered item for a record as done.

        Used when the remote turns out to hold the local state already.

        Returns:
            Number of items marked done
        """
        items = self.outstanding_items(store_name, record_id)
        for item in items:
            self.mark_done(item)
        return len(items)

    def reset_stale_processing(self) -> int:
        """Return items stuck in ``processing`` to ``pending``.

        Items only stay in ``processing`` when a process died mid-push.

        Returns:
            Number of items reset
        """
        stale = self.list_items(QueueStatus.PROCESSING)
        for item in stale:
            item.status = QueueStatus.PENDING
            self.save(item)
        if stale:
            logger.warning("Reset %d interrupted queue item(s) to pending", len(stale))
        return len(stale)

    def retry(self, item_id: str) -> Optional[SyncQueueItem]:
        """Put a failed item back into the queue with a fresh attempt budget.

        Returns:
            The updated item, or None if no such item exists
        """
        item = self.get_item(item_id)
        if item is None:
            return None
        if item.status in (QueueStatus.FAILED, QueueStatus.PENDING):
            item.status = QueueStatus.PENDING
            item.attempts = 0
            item.error = None
            item.next_attempt_at = None
            self.save(item)
            logger.info("Queue item %s scheduled for retry", item_id)
        return item

    def retry_failed(self) -> int:
        """Retry every failed item.

        Returns:
            Number of items requeued
        """
        failed = self.list_items(QueueStatus.FAILED)
        for item in failed:
            self.retry(item.id)
        return len(failed)

    def clear(self, item_id: str) -> bool:
        """Drop a queue item without delivering it.

        Returns:
            True if an item was removed
        """
        if self.store.get(SYNC_QUEUE, item_id) is None:
            return False
        self.store.delete(SYNC_QUEUE, item_id)
        logger.info("Queue item %s cleared", item_id)
        return True

    def cancel_for(self, store_name: str, record_id: str) -> int:
        """Drop every undelivered item for one record.

        Returns:
            Number of items removed
        """
        cancelled = 0
        for item in self._items_for(store_name, record_id):
            if item.status != QueueStatus.DONE:
                self.store.delete(SYNC_QUEUE, item.id)
                cancelled += 1
        return cancelled

    def purge_done(self) -> int:
        """Delete delivered items.

        Returns:
            Number of items removed
        """
        done = self.list_items(QueueStatus.DONE)
        for item in done:
            self.store.delete(SYNC_QUEUE, item.id)
        return len(done)
