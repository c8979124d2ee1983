"""Data models for the Homestead sync core.

Records travel through the record store as plain dicts with camelCase keys.
The models here validate those dicts and dump them back with
``to_record()``.
"""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..utils.time_utils import now_ms


def new_id() -> str:
    """Generate a new record id."""
    return str(uuid.uuid4())


class SyncStatus(str, Enum):
    """Replication state of a local record."""

    PENDING = "pending"
    SYNCED = "synced"


class QueueOperation(str, Enum):
    """Kind of change recorded in the outbox."""

    PUT = "put"
    DELETE = "delete"


class QueueStatus(str, Enum):
    """Lifecycle of an outbox item."""

    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"
    DONE = "done"


class Resolution(str, Enum):
    """How a conflict was settled."""

    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"


class IntegrationType(str, Enum):
    """Category of an external integration."""

    WEATHER = "weather"
    SENSOR_HARDWARE = "sensor_hardware"
    MARKET_FEED = "market_feed"
    SEED_CATALOG = "seed_catalog"
    ANIMAL_REGISTRY = "animal_registry"
    AI_ENGINE = "ai_engine"


class IntegrationStatus(str, Enum):
    """Operational state of an integration."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class LogAction(str, Enum):
    """What an integration log entry describes."""

    SYNC = "sync"
    ERROR = "error"
    CONFIG_CHANGE = "config_change"


class LogStatus(str, Enum):
    """Outcome recorded on an integration log entry."""

    SUCCESS = "success"
    FAILURE = "failure"


class DeviceStatus(str, Enum):
    """Reachability of a sensor device."""

    ONLINE = "online"
    OFFLINE = "offline"
    ERROR = "error"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase record dicts."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> Dict[str, Any]:
        """Dump the model as a JSON-compatible record dict."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Any:
        """Build the model from a stored record dict."""
        return cls.model_validate(record)


class SyncableRecord(CamelModel):
    """Common fields of every record that can replicate.

    Unknown fields are preserved so domain records of any shape round-trip.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str = Field(default_factory=new_id)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)
    sync_status: SyncStatus = SyncStatus.PENDING


class SyncQueueItem(CamelModel):
    """A pending intent to replicate one local change."""

    id: str = Field(default_factory=new_id)
    store_name: str
    record_id: str
    operation: QueueOperation
    timestamp: int = Field(default_factory=now_ms)
    status: QueueStatus = QueueStatus.PENDING
    attempts: int = 0
    error: Optional[str] = None
    next_attempt_at: Optional[int] = None

    @property
    def key(self) -> Tuple[str, str]:
        """The ``(store_name, record_id)`` pair this item replicates."""
        return (self.store_name, self.record_id)

    def is_due(self, now: int) -> bool:
        """Check whether a pending item's backoff has elapsed."""
        return self.status == QueueStatus.PENDING and (
            self.next_attempt_at is None or self.next_attempt_at <= now
        )


class ConflictLog(CamelModel):
    """A remote change that collided with an unpushed local change."""

    id: str = Field(default_factory=new_id)
    store_name: str
    record_id: str
    local_version: Optional[Dict[str, Any]] = None
    remote_version: Optional[Dict[str, Any]] = None
    remote_deleted: bool = False
    detected_at: int = Field(default_factory=now_ms)
    resolved: bool = False
    resolved_at: Optional[int] = None
    resolution: Optional[Resolution] = None

    @property
    def key(self) -> Tuple[str, str]:
        """The ``(store_name, record_id)`` pair in conflict."""
        return (self.store_name, self.record_id)

    def differing_fields(self) -> List[str]:
        """List top-level fields whose values differ between the versions."""
        local = self.local_version or {}
        remote = self.remote_version or {}
        ignored = {"syncStatus"}
        keys = (set(local) | set(remote)) - ignored
        return sorted(k for k in keys if local.get(k) != remote.get(k))


class IntegrationConfig(SyncableRecord):
    """Configuration of one external integration."""

    name: str
    provider: str
    type: IntegrationType
    status: IntegrationStatus = IntegrationStatus.ACTIVE
    settings: Dict[str, Any] = Field(default_factory=dict)
    last_sync_at: Optional[int] = None
    error_count: int = 0
    last_error_message: Optional[str] = None

    @field_validator("name", "provider")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject blank names and provider ids."""
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class IntegrationLog(CamelModel):
    """Append-only audit entry for integration activity."""

    id: str = Field(default_factory=new_id)
    integration_id: str
    action: LogAction
    status: LogStatus
    details: str = ""
    duration_ms: Optional[int] = None
    created_at: int = Field(default_factory=now_ms)


class SensorDevice(SyncableRecord):
    """A physical sensor discovered through a hardware integration."""

    integration_id: str
    external_id: str
    name: str
    type: str
    location: Optional[str] = None
    status: DeviceStatus = DeviceStatus.ONLINE
    last_reading: Optional[float] = None
    last_reading_at: Optional[int] = None


class SensorReading(SyncableRecord):
    """A single measurement taken by a sensor device."""

    sensor_id: str
    timestamp: int
    value: float
    unit: str = ""
    type: str


class WeatherObservation(SyncableRecord):
    """Current conditions reported by a weather integration."""

    integration_id: str
    observed_at: int
    temp: Optional[float] = None
    humidity: Optional[float] = None
    condition: Optional[str] = None
    location: Optional[str] = None


class SensorPayloadItem(CamelModel):
    """One reading as delivered by a sensor gateway."""

    external_id: str
    type: str
    value: float
    unit: str = ""
    location: Optional[str] = None

    @field_validator("external_id", mode="before")
    @classmethod
    def validate_external_id(cls, v: Any) -> str:
        """Accept numeric ids but reject blank ones."""
        if v is None or str(v).strip() == "":
            raise ValueError("externalId must not be blank")
        return str(v).strip()
