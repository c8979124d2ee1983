"""Sync bookkeeping stored alongside the records."""

from typing import Optional

from ...database.base import RecordStore
from ...utils.time_utils import now_ms

SYNC_META = "sync_meta"
PULL_CURSOR_ID = "pull_cursor"


class SyncMetadata:
    """Pull cursor and last-known-synced versions.

    The last-known-synced ``updatedAt`` of a record is the version this
    device last pushed or applied. A pulled version that differs from it
    while a local change is queued means both sides moved.
    """

    def __init__(self, store: RecordStore) -> None:
        """Initialize with the record store holding ``sync_meta``."""
        self.store = store

    def get_cursor(self) -> int:
        """Greatest remote ``updated_at`` pulled so far."""
        record = self.store.get(SYNC_META, PULL_CURSOR_ID)
        return int(record.get("value") or 0) if record else 0

    def set_cursor(self, value: int) -> None:
        """Persist the pull cursor."""
        self.store.put(
            SYNC_META, {"id": PULL_CURSOR_ID, "value": int(value), "updatedAt": now_ms()}
        )

    def reset_cursor(self) -> None:
        """Forget the pull cursor so the next pull starts from scratch."""
        self.store.delete(SYNC_META, PULL_CURSOR_ID)

    @staticmethod
    def _version_id(store_name: str, record_id: str) -> str:
        return f"version:{store_name}:{record_id}"

    def get_last_synced(self, store_name: str, record_id: str) -> Optional[int]:
        """Last-known-synced ``updatedAt`` of a record, or None if never synced."""
        record = self.store.get(SYNC_META, self._version_id(store_name, record_id))
        if record is None or record.get("value") is None:
            return None
        return int(record["value"])

    def set_last_synced(self, store_name: str, record_id: str, updated_at: int) -> None:
        """Remember the version last exchanged with the remote."""
        self.store.put(
            SYNC_META,
            {
                "id": self._version_id(store_name, record_id),
                "storeName": store_name,
                "recordId": record_id,
                "value": int(updated_at),
                "updatedAt": now_ms(),
            },
        )
