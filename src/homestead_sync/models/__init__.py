"""Models for the Homestead sync core."""

from .models import (
    ConflictLog,
    DeviceStatus,
    IntegrationConfig,
    IntegrationLog,
    IntegrationStatus,
    IntegrationType,
    LogAction,
    LogStatus,
    QueueOperation,
    QueueStatus,
    Resolution,
    SensorDevice,
    SensorPayloadItem,
    SensorReading,
    SyncableRecord,
    SyncQueueItem,
    SyncStatus,
    WeatherObservation,
    new_id,
)

__all__ = [
    "ConflictLog",
    "DeviceStatus",
    "IntegrationConfig",
    "IntegrationLog",
    "IntegrationStatus",
    "IntegrationType",
    "LogAction",
    "LogStatus",
    "QueueOperation",
    "QueueStatus",
    "Resolution",
    "SensorDevice",
    "SensorPayloadItem",
    "SensorReading",
    "SyncableRecord",
    "SyncQueueItem",
    "SyncStatus",
    "WeatherObservation",
    "new_id",
]
