"""Remote replica clients.

The remote is a table of rows ``(collection, id, data, updated_at, deleted,
owner)``. Pushes are upserts keyed by ``(collection, id)`` carrying the
client's ``updated_at``; pulls return rows changed after a cursor.
"""

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

import requests

from ...exceptions import (
    PermanentValidationError,
    RemoteChangedError,
    TransientNetworkError,
)
from ...utils.time_utils import now_ms

logger = logging.getLogger(__name__)

# Statuses worth retrying even though they are 4xx
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})


@dataclass
class RemoteRow:
    """One row of the remote replica."""

    collection: str
    id: str
    data: Optional[Dict[str, Any]]
    updated_at: int
    deleted: bool = False
    owner: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        """The ``(collection, id)`` pair of this row."""
        return (self.collection, self.id)

    def as_record(self) -> Dict[str, Any]:
        """Remote version as a record dict whose ``updatedAt`` is the row's."""
        record = dict(self.data or {})
        record["id"] = self.id
        record["updatedAt"] = self.updated_at
        return record

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation of the row."""
        return {
            "collection": self.collection,
            "id": self.id,
            "data": self.data,
            "updated_at": self.updated_at,
            "deleted": self.deleted,
            "owner": self.owner,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "RemoteRow":
        """Parse a row from its wire representation.

        Raises:
            PermanentValidationError: If required fields are missing
        """
        try:
            return cls(
                collection=str(payload["collection"]),
                id=str(payload["id"]),
                data=payload.get("data"),
                updated_at=int(payload["updated_at"]),
                deleted=bool(payload.get("deleted", False)),
                owner=payload.get("owner"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PermanentValidationError(f"Malformed remote row: {payload!r}") from e


@runtime_checkable
class RemoteReplica(Protocol):
    """Contract of the remote replica used by the sync engine."""

    async def push(
        self,
        collection: str,
        record_id: str,
        data: Optional[Dict[str, Any]],
        updated_at: int,
        deleted: bool = False,
        base_updated_at: Optional[int] = None,
    ) -> None:
        """Upsert one row.

        ``base_updated_at`` is the version the client last synced. A replica
        that supports conditional writes raises ``RemoteChangedError`` when its
        row has moved past that version.
        """
        ...

    async def pull(self, since: int) -> List[RemoteRow]:
        """Return rows with ``updated_at`` greater than ``since``."""
        ...

    async def ping(self) -> bool:
        """Return True when the replica is reachable."""
        ...


class InMemoryRemoteReplica:
    """Remote replica kept in process.

    Useful for tests and demos: ``online`` simulates connectivity and
    ``simulate_remote_update`` stands in for another device's write.
    """

    def __init__(self, owner: str = "local") -> None:
        """Initialize an empty replica.

        Args:
            owner: Owner stamped on every row
        """
        self.owner = owner
        self.online = True
        self.rows: Dict[Tuple[str, str], RemoteRow] = {}
        self.push_count = 0
        self.pull_count = 0
        self.reject: Dict[Tuple[str, str], str] = {}

    def _ensure_online(self) -> None:
        if not self.online:
            raise TransientNetworkError("Remote replica unreachable")

    async def push(
        self,
        collection: str,
        record_id: str,
        data: Optional[Dict[str, Any]],
        updated_at: int,
        deleted: bool = False,
        base_updated_at: Optional[int] = None,
    ) -> None:
        self._ensure_online()
        key = (collection, record_id)
        if key in self.reject:
            raise PermanentValidationError(self.reject[key])

        current = self.rows.get(key)
        if (
            current is not None
            and current.updated_at == updated_at
            and current.deleted == deleted
            and (deleted or current.data == data)
        ):
            logger.debug("Push of %s/%s replays the stored row", collection, record_id)
            return

        current_version = current.updated_at if current is not None else None
        if current_version is not None and current_version != base_updated_at:
            raise RemoteChangedError(
                f"{collection}/{record_id} is at {current_version}, "
                f"expected {base_updated_at}"
            )

        self.push_count += 1
        self.rows[key] = RemoteRow(
            collection=collection,
            id=record_id,
            data=None if deleted else copy.deepcopy(data),
            updated_at=updated_at,
            deleted=deleted,
            owner=self.owner,
        )

    async def pull(self, since: int) -> List[RemoteRow]:
        self._ensure_online()
        self.pull_count += 1
        changed = [row for row in self.rows.values() if row.updated_at > since]
        return [copy.deepcopy(row) for row in sorted(changed, key=lambda r: r.updated_at)]

    async def ping(self) -> bool:
        return self.online

    def get_row(self, collection: str, record_id: str) -> Optional[RemoteRow]:
        """Current row for a key, if any."""
        return self.rows.get((collection, record_id))

    def simulate_remote_update(
        self,
        collection: str,
        record_id: str,
        changes: Optional[Dict[str, Any]] = None,
        updated_at: Optional[int] = None,
        deleted: bool = False,
    ) -> RemoteRow:
        """Write a row as if another device had pushed it.

        Args:
            collection: Collection of the row
            record_id: Id of the row
            changes: Fields merged over the existing row data
            updated_at: Version to stamp; defaults to now
            deleted: Write a tombstone instead

        Returns:
            The new row
        """
        current = self.rows.get((collection, record_id))
        data = dict(current.data or {}) if current is not None else {"id": record_id}
        data.update(changes or {})
        version = updated_at if updated_at is not None else now_ms()
        data["updatedAt"] = version
        row = RemoteRow(
            collection=collection,
            id=record_id,
            data=None if deleted else data,
            updated_at=version,
            deleted=deleted,
            owner=self.owner,
        )
        self.rows[(collection, record_id)] = row
        logger.debug("Simulated remote update of %s/%s at %s", collection, record_id, version)
        return row


class HttpRemoteReplica:
    """Remote replica reached over a small REST API.

    Endpoints, relative to ``base_url``:

    - ``PUT /records/{collection}/{id}`` upserts one row; answers 409 when
      ``base_updated_at`` no longer matches, 2xx for a replay of the stored row
    - ``GET /records?since=<ms>`` lists changed rows
    - ``GET /health`` answers 2xx when the service is up

    Blocking ``requests`` calls run in worker threads.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        owner: Optional[str] = None,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Root URL of the replica API
            token: Bearer token sent on every request
            owner: Owner stamped on pushed rows
            timeout: Per-request timeout in seconds
            session: Optional preconfigured requests session
        """
        self.base_url = base_url.rstrip("/")
        self.owner = owner
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send one request and map failures onto sync errors.

        Raises:
            TransientNetworkError: Connection problems, timeouts, 5xx, 408/425/429
            RemoteChangedError: 409 on a conditional write
            PermanentValidationError: Any other 4xx
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise TransientNetworkError(f"{method} {path} timed out") from e
        except requests.RequestException as e:
            raise TransientNetworkError(f"{method} {path} failed: {e}") from e

        status = response.status_code
        if status >= 500 or status in RETRYABLE_STATUS_CODES:
            raise TransientNetworkError(f"{method} {path} returned {status}")
        if status == 409:
            raise RemoteChangedError(f"{method} {path} rejected as stale")
        if status >= 400:
            raise PermanentValidationError(
                f"{method} {path} rejected ({status}): {response.text[:200]}"
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransientNetworkError(f"{method} {path} returned invalid JSON") from e

    async def push(
        self,
        collection: str,
        record_id: str,
        data: Optional[Dict[str, Any]],
        updated_at: int,
        deleted: bool = False,
        base_updated_at: Optional[int] = None,
    ) -> None:
        body = {
            "data": None if deleted else data,
            "updated_at": updated_at,
            "deleted": deleted,
            "owner": self.owner,
            "base_updated_at": base_updated_at,
        }
        await asyncio.to_thread(
            self._request, "PUT", f"/records/{collection}/{record_id}", json=body
        )

    async def pull(self, since: int) -> List[RemoteRow]:
        payload = await asyncio.to_thread(
            self._request, "GET", "/records", params={"since": since}
        )
        if payload is None:
            return []
        rows = payload.get("rows", []) if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            raise PermanentValidationError("Remote pull returned unexpected payload")
        return [RemoteRow.from_dict(row) for row in rows]

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self._request, "GET", "/health")
        except (TransientNetworkError, PermanentValidationError) as e:
            logger.debug("Remote ping failed: %s", e)
            return False
        return True
