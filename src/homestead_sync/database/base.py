"""Record store contract shared by every storage backend."""

import re
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

Record = Dict[str, Any]

_INDEX_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@runtime_checkable
class RecordStore(Protocol):
    """Durable keyed storage of JSON records grouped into collections.

    Records are dicts carrying at least an ``id``. Every operation is atomic
    per record; ``write_many`` is atomic across records.
    """

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        """Return one record, or None when absent."""
        ...

    def get_all(self, collection: str) -> List[Record]:
        """Return every record in a collection."""
        ...

    def get_all_by_index(
        self, collection: str, index_name: str, value: Any
    ) -> List[Record]:
        """Return the records whose top-level ``index_name`` equals ``value``."""
        ...

    def put(self, collection: str, record: Record) -> None:
        """Insert or replace a record by its ``id``."""
        ...

    def delete(self, collection: str, record_id: str) -> None:
        """Remove a record. Deleting an absent record is a no-op."""
        ...

    def write_many(
        self,
        puts: Sequence[Tuple[str, Record]] = (),
        deletes: Sequence[Tuple[str, str]] = (),
    ) -> None:
        """Apply several puts and deletes as one unit: all of them or none."""
        ...


def validate_index_name(index_name: str) -> str:
    """Ensure an index name is a plain top-level field name.

    Args:
        index_name: Field name to look up

    Returns:
        The validated name

    Raises:
        ValueError: If the name is not an identifier
    """
    if not _INDEX_NAME.match(index_name or ""):
        raise ValueError(f"Invalid index name: {index_name!r}")
    return index_name
