"""Pure decision rules for replication.

Nothing here touches storage or the network, so every rule can be tested
with plain dicts.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

Record = Dict[str, Any]


class RemoteDecision(str, Enum):
    """What to do with one pulled remote version."""

    APPLY = "apply"
    SKIP = "skip"
    CONFLICT = "conflict"


def record_updated_at(record: Optional[Record]) -> int:
    """Read a record's ``updatedAt`` as epoch milliseconds (0 when absent)."""
    if not record:
        return 0
    value = record.get("updatedAt")
    return int(value) if value is not None else 0


def should_apply_remote(local: Optional[Record], remote: Optional[Record]) -> bool:
    """Last-writer-wins rule for a remote version without local changes.

    Args:
        local: Current local record, or None
        remote: Remote version

    Returns:
        True when there is no local copy or the remote copy is strictly newer
    """
    if remote is None:
        return False
    if local is None:
        return True
    return record_updated_at(remote) > record_updated_at(local)


def _replicated_fields(record: Record) -> Record:
    return {key: value for key, value in record.items() if key != "syncStatus"}


def is_own_write(
    local: Optional[Record],
    remote: Record,
    *,
    remote_deleted: bool = False,
    pending_delete: bool = False,
) -> bool:
    """Whether a pulled remote version is exactly what this device holds.

    A push whose reply was lost still lands on the remote; its row then comes
    back on the next pull and acknowledges the push.

    Args:
        local: Current local record, or None
        remote: Remote version
        remote_deleted: Whether the remote row is a tombstone
        pending_delete: Whether the unpushed local change is a delete

    Returns:
        True when the remote row matches local state field for field
    """
    if remote_deleted:
        return local is None and pending_delete
    if local is None:
        return False
    if record_updated_at(local) != record_updated_at(remote):
        return False
    return _replicated_fields(local) == _replicated_fields(remote)


def classify_remote(
    local: Optional[Record],
    remote: Record,
    *,
    remote_deleted: bool = False,
    has_pending_change: bool = False,
    last_synced_at: Optional[int] = None,
) -> RemoteDecision:
    """Decide how a pulled remote version interacts with local state.

    Args:
        local: Current local record, or None
        remote: Remote version (for tombstones, at least ``updatedAt``)
        remote_deleted: Whether the remote row is a tombstone
        has_pending_change: Whether an unpushed local change exists
        last_synced_at: ``updatedAt`` of the version this device last
            exchanged with the remote, or None if never

    Returns:
        APPLY, SKIP or CONFLICT
    """
    if has_pending_change:
        if last_synced_at is not None and record_updated_at(remote) == last_synced_at:
            # Remote is still what we last saw; our push will supersede it
            return RemoteDecision.SKIP
        return RemoteDecision.CONFLICT

    if remote_deleted and local is None:
        return RemoteDecision.SKIP

    if should_apply_remote(local, remote):
        return RemoteDecision.APPLY
    return RemoteDecision.SKIP


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for transient push failures."""

    max_attempts: int = 5
    base_delay: float = 2.0
    max_delay: float = 300.0

    def delay_for(self, attempts: int) -> float:
        """Seconds to wait after the given number of failed attempts."""
        exponent = max(0, attempts - 1)
        return min(self.max_delay, self.base_delay * (2**exponent))

    def exhausted(self, attempts: int) -> bool:
        """Whether no attempts remain."""
        return attempts >= self.max_attempts
