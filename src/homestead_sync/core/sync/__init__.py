"""Offline-first replication of local records.

Local writes land in the outbox, the cycle engine pushes them and pulls
remote changes, and colliding edits become conflicts for an explicit
resolution.
"""

from .conflict_resolver import CONFLICT_LOG, ConflictResolver
from .engine import SyncCycleEngine, SyncResult
from .locks import RecordLocks
from .metadata import SYNC_META, SyncMetadata
from .outbox import (
    LOCAL_ONLY_COLLECTIONS,
    SYNC_QUEUE,
    ChangeInterceptor,
    collapse_pending,
)
from .policy import (
    RemoteDecision,
    RetryPolicy,
    classify_remote,
    is_own_write,
    record_updated_at,
    should_apply_remote,
)
from .remote import (
    HttpRemoteReplica,
    InMemoryRemoteReplica,
    RemoteReplica,
    RemoteRow,
)

__all__ = [
    # Outbox
    "ChangeInterceptor",
    "LOCAL_ONLY_COLLECTIONS",
    "SYNC_QUEUE",
    "collapse_pending",
    # Engine
    "SyncCycleEngine",
    "SyncResult",
    # Conflicts
    "CONFLICT_LOG",
    "ConflictResolver",
    # Bookkeeping
    "RecordLocks",
    "SYNC_META",
    "SyncMetadata",
    # Policy
    "RemoteDecision",
    "RetryPolicy",
    "classify_remote",
    "is_own_write",
    "record_updated_at",
    "should_apply_remote",
    # Remote
    "HttpRemoteReplica",
    "InMemoryRemoteReplica",
    "RemoteReplica",
    "RemoteRow",
]
