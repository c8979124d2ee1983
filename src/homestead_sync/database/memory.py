"""In-process record store used by tests and ephemeral sessions."""

import copy
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..exceptions import RecordStoreError
from .base import Record, validate_index_name


class InMemoryRecordStore:
    """Dict-backed record store.

    Records are deep-copied on the way in and out so callers never share
    state with the store, as with a real database.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._collections: Dict[str, Dict[str, Record]] = {}

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        record = self._collections.get(collection, {}).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def get_all(self, collection: str) -> List[Record]:
        return [
            copy.deepcopy(record)
            for record in self._collections.get(collection, {}).values()
        ]

    def get_all_by_index(
        self, collection: str, index_name: str, value: Any
    ) -> List[Record]:
        validate_index_name(index_name)
        return [
            record
            for record in self.get_all(collection)
            if record.get(index_name) == value
        ]

    def put(self, collection: str, record: Record) -> None:
        record_id = record.get("id")
        if not record_id:
            raise RecordStoreError(f"Cannot store record without id in {collection}")
        self._collections.setdefault(collection, {})[str(record_id)] = copy.deepcopy(
            record
        )

    def delete(self, collection: str, record_id: str) -> None:
        self._collections.get(collection, {}).pop(record_id, None)

    def write_many(
        self,
        puts: Sequence[Tuple[str, Record]] = (),
        deletes: Sequence[Tuple[str, str]] = (),
    ) -> None:
        touched = {collection for collection, _ in puts}
        touched.update(collection for collection, _ in deletes)
        snapshot = {
            collection: dict(self._collections.get(collection, {}))
            for collection in touched
        }
        try:
            for collection, record in puts:
                self.put(collection, record)
            for collection, record_id in deletes:
                self.delete(collection, record_id)
        except Exception:
            self._collections.update(snapshot)
            raise

    def count(self, collection: str) -> int:
        """Number of records in a collection."""
        return len(self._collections.get(collection, {}))

    def get_statistics(self) -> Dict[str, Any]:
        """Get record counts per collection."""
        return {
            "collections": {
                name: len(records) for name, records in self._collections.items()
            },
            "database_path": ":memory:",
        }
