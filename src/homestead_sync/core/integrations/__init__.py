"""External integrations: adapters, materializers and orchestration."""

from .adapters import (
    AdapterRegistry,
    FetchResult,
    GeminiAdapter,
    HttpIntegrationAdapter,
    IntegrationAdapter,
    MqttGatewayAdapter,
    OpenWeatherMapAdapter,
    default_registry,
)
from .log import INTEGRATION_LOGS, IntegrationLogService
from .materializers import (
    SENSOR_DEVICES,
    SENSOR_READINGS,
    WEATHER_OBSERVATIONS,
    AiEngineMaterializer,
    MaterializeResult,
    Materializer,
    MaterializerRegistry,
    SensorMaterializer,
    WeatherMaterializer,
    default_materializers,
)
from .orchestrator import INTEGRATIONS, IntegrationOrchestrator, IntegrationSyncResult

__all__ = [
    # Adapters
    "AdapterRegistry",
    "FetchResult",
    "GeminiAdapter",
    "HttpIntegrationAdapter",
    "IntegrationAdapter",
    "MqttGatewayAdapter",
    "OpenWeatherMapAdapter",
    "default_registry",
    # Logging
    "INTEGRATION_LOGS",
    "IntegrationLogService",
    # Materializers
    "AiEngineMaterializer",
    "MaterializeResult",
    "Materializer",
    "MaterializerRegistry",
    "SENSOR_DEVICES",
    "SENSOR_READINGS",
    "SensorMaterializer",
    "WEATHER_OBSERVATIONS",
    "WeatherMaterializer",
    "default_materializers",
    # Orchestration
    "INTEGRATIONS",
    "IntegrationOrchestrator",
    "IntegrationSyncResult",
]
