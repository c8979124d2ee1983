"""Local record store backends.

``DatabaseService`` persists records in SQLite; ``InMemoryRecordStore`` keeps
them in process. Both satisfy the ``RecordStore`` protocol.
"""

from .base import Record, RecordStore, validate_index_name
from .memory import InMemoryRecordStore
from .models import Base, StoredRecord
from .service import DatabaseService

__all__ = [
    "Base",
    "DatabaseService",
    "InMemoryRecordStore",
    "Record",
    "RecordStore",
    "StoredRecord",
    "validate_index_name",
]
