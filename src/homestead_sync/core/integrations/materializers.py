"""Turn fetched integration payloads into local domain records.

Materializers write to local-only collections directly; nothing they
produce is queued for replication.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from pydantic import ValidationError

from ...database.base import RecordStore
from ...models import (
    DeviceStatus,
    IntegrationConfig,
    IntegrationType,
    LogAction,
    LogStatus,
    SensorDevice,
    SensorPayloadItem,
    SensorReading,
    SyncStatus,
    WeatherObservation,
)
from ...utils.time_utils import now_ms
from ..sync.locks import RecordLocks
from .log import IntegrationLogService

logger = logging.getLogger(__name__)

SENSOR_DEVICES = "sensor_devices"
SENSOR_READINGS = "sensor_readings"
WEATHER_OBSERVATIONS = "weather_observations"

_DEVICE_NAMESPACE = uuid.UUID("5f0c6a3e-8d4b-4c61-9a7e-2b1f3c9d7e10")


@dataclass
class MaterializeResult:
    """Counts of records written by a materializer."""

    created: int = 0
    updated: int = 0
    appended: int = 0
    invalid: int = 0

    def get_summary(self) -> Dict[str, int]:
        """Get summary of written records."""
        return {
            "created": self.created,
            "updated": self.updated,
            "appended": self.appended,
            "invalid": self.invalid,
        }


class Materializer(ABC):
    """Writes one integration type's payload into the record store."""

    type: IntegrationType

    def __init__(
        self,
        store: RecordStore,
        locks: Optional[RecordLocks] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the materializer.

        Args:
            store: Record store to write to
            locks: Shared per-record locks
            clock: Millisecond clock
        """
        self.store = store
        self.locks = locks or RecordLocks()
        self._clock = clock

    @abstractmethod
    async def materialize(
        self, config: IntegrationConfig, data: Any
    ) -> MaterializeResult:
        """Write records derived from ``data``."""


class SensorMaterializer(Materializer):
    """Upsert sensor devices and append their readings."""

    type = IntegrationType.SENSOR_HARDWARE

    @staticmethod
    def device_id(integration_id: str, external_id: str) -> str:
        """Stable local id for a device seen through an integration."""
        return str(uuid.uuid5(_DEVICE_NAMESPACE, f"{integration_id}:{external_id}"))

    def find_device(
        self, integration_id: str, external_id: str
    ) -> Optional[Dict[str, Any]]:
        """Look up a device by the id the gateway reports for it."""
        for device in self.store.get_all_by_index(
            SENSOR_DEVICES, "integrationId", integration_id
        ):
            if device.get("externalId") == external_id:
                return device
        return None

    async def materialize(
        self, config: IntegrationConfig, data: Any
    ) -> MaterializeResult:
        result = MaterializeResult()
        if not isinstance(data, list):
            logger.warning(
                "Sensor payload for %s is not a list, ignoring", config.id
            )
            return result

        for raw in data:
            try:
                item = SensorPayloadItem.model_validate(raw)
            except ValidationError as e:
                result.invalid += 1
                logger.warning("Skipping invalid sensor reading %r: %s", raw, e)
                continue
            await self._apply_reading(config, item, result)

        logger.info(
            "Materialized %d reading(s) for %s (%d new device(s))",
            result.appended,
            config.name,
            result.created,
        )
        return result

    async def _apply_reading(
        self, config: IntegrationConfig, item: SensorPayloadItem, result: MaterializeResult
    ) -> None:
        now = self._clock()
        existing = self.find_device(config.id, item.external_id)
        device_id = (
            existing["id"] if existing else self.device_id(config.id, item.external_id)
        )

        async with self.locks.hold(SENSOR_DEVICES, device_id):
            current = self.store.get(SENSOR_DEVICES, device_id)
            if current is None:
                device = SensorDevice(
                    id=device_id,
                    integration_id=config.id,
                    external_id=item.external_id,
                    name=item.location or f"Device {item.external_id}",
                    type=item.type,
                    location=item.location,
                    status=DeviceStatus.ONLINE,
                    created_at=now,
                    updated_at=now,
                    sync_status=SyncStatus.SYNCED,
                )
                result.created += 1
            else:
                device = SensorDevice.from_record(current)
                result.updated += 1

            device.last_reading = item.value
            device.last_reading_at = now
            device.status = DeviceStatus.ONLINE
            device.updated_at = max(now, device.updated_at)
            self.store.put(SENSOR_DEVICES, device.to_record())

        reading = SensorReading(
            sensor_id=device_id,
            timestamp=now,
            value=item.value,
            unit=item.unit,
            type=item.type,
            created_at=now,
            updated_at=now,
            sync_status=SyncStatus.SYNCED,
        )
        self.store.put(SENSOR_READINGS, reading.to_record())
        result.appended += 1


class WeatherMaterializer(Materializer):
    """Append one weather observation per successful fetch."""

    type = IntegrationType.WEATHER

    async def materialize(
        self, config: IntegrationConfig, data: Any
    ) -> MaterializeResult:
        result = MaterializeResult()
        if not isinstance(data, dict):
            logger.warning("Weather payload for %s is not an object, ignoring", config.id)
            return result

        now = self._clock()
        observation = WeatherObservation(
            integration_id=config.id,
            observed_at=now,
            temp=data.get("temp"),
            humidity=data.get("humidity"),
            condition=data.get("condition"),
            location=data.get("location"),
            created_at=now,
            updated_at=now,
            sync_status=SyncStatus.SYNCED,
        )
        self.store.put(WEATHER_OBSERVATIONS, observation.to_record())
        result.appended = 1
        return result


class AiEngineMaterializer(Materializer):
    """Record that an AI engine answered; no records are derived."""

    type = IntegrationType.AI_ENGINE

    def __init__(
        self,
        store: RecordStore,
        log_service: IntegrationLogService,
        locks: Optional[RecordLocks] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize with the log service receiving the verification entry."""
        super().__init__(store, locks, clock)
        self.log_service = log_service

    async def materialize(
        self, config: IntegrationConfig, data: Any
    ) -> MaterializeResult:
        self.log_service.log(
            config.id, LogAction.SYNC, LogStatus.SUCCESS, "AI Connectivity Verified"
        )
        return MaterializeResult()


class MaterializerRegistry:
    """Map of integration type to materializer."""

    def __init__(self, materializers: Iterable[Materializer] = ()) -> None:
        """Initialize the registry with the given materializers."""
        self._materializers: Dict[IntegrationType, Materializer] = {}
        for materializer in materializers:
            self.register(materializer)

    def register(self, materializer: Materializer) -> None:
        """Register a materializer for its type, replacing any previous one."""
        self._materializers[materializer.type] = materializer

    def get(self, integration_type: IntegrationType) -> Optional[Materializer]:
        """Materializer for a type, or None when the type has none."""
        return self._materializers.get(IntegrationType(integration_type))


def default_materializers(
    store: RecordStore,
    log_service: IntegrationLogService,
    locks: Optional[RecordLocks] = None,
    clock: Callable[[], int] = now_ms,
) -> MaterializerRegistry:
    """Registry with the built-in materializers."""
    return MaterializerRegistry(
        [
            SensorMaterializer(store, locks, clock),
            WeatherMaterializer(store, locks, clock),
            AiEngineMaterializer(store, log_service, locks, clock),
        ]
    )
