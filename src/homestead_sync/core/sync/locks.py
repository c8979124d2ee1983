"""Per-record asyncio locks."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

RecordKey = Tuple[str, str]


class RecordLocks:
    """Serialize mutations of the same ``(collection, id)``.

    Locks are created on first use and dropped once nobody holds or awaits
    them, so the table only grows with concurrent activity.
    """

    def __init__(self) -> None:
        """Initialize an empty lock table."""
        self._locks: Dict[RecordKey, asyncio.Lock] = {}
        self._users: Dict[RecordKey, int] = {}

    @asynccontextmanager
    async def hold(self, collection: str, record_id: str) -> AsyncIterator[None]:
        """Hold the lock for one record for the duration of the block."""
        key = (collection, record_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_locked(self, collection: str, record_id: str) -> bool:
        """Check whether a record's lock is currently held."""
        lock = self._locks.get((collection, record_id))
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
