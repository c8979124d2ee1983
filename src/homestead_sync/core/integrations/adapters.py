"""Integration adapters and the adapter registry.

An adapter knows how to fetch data from one external provider. Adapters do
not write to the record store; the orchestrator hands their output to a
materializer.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from ...exceptions import AdapterConfigError, AdapterMissingError
from ...models import IntegrationConfig, IntegrationType

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 20.0


@dataclass
class FetchResult:
    """Outcome of one adapter fetch."""

    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any) -> "FetchResult":
        """Successful fetch carrying the provider payload."""
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str) -> "FetchResult":
        """Failed fetch with a human readable reason."""
        return cls(success=False, error=error)


class IntegrationAdapter(ABC):
    """Contract every integration adapter implements."""

    id: str = ""
    name: str = ""
    type: IntegrationType = IntegrationType.WEATHER

    @abstractmethod
    async def fetch(self, config: IntegrationConfig) -> FetchResult:
        """Fetch the provider's current data for one integration."""

    def transform(self, data: Any) -> Any:
        """Reshape a fetched payload for the materializer."""
        return data

    @staticmethod
    def require_setting(config: IntegrationConfig, key: str, label: str) -> Any:
        """Read a mandatory setting.

        Raises:
            AdapterConfigError: If the setting is missing or blank
        """
        value = config.settings.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise AdapterConfigError(f"Missing {label}")
        return value


class HttpIntegrationAdapter(IntegrationAdapter):
    """Base for adapters that poll a JSON HTTP endpoint."""

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        """Initialize the adapter.

        Args:
            session: Optional requests session shared between calls
        """
        self.session = session or requests.Session()

    def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> FetchResult:
        """Blocking GET returning the decoded JSON body as a FetchResult."""
        try:
            response = self.session.get(
                url, params=params, headers=headers, timeout=timeout
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            return FetchResult.failure(f"HTTP {status} from {self.name}")
        except requests.Timeout:
            return FetchResult.failure(f"{self.name} request timed out")
        except requests.RequestException as e:
            return FetchResult.failure(f"{self.name} unreachable: {e}")

        try:
            return FetchResult.ok(response.json())
        except ValueError:
            return FetchResult.failure(f"{self.name} returned invalid JSON")

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> FetchResult:
        """Run ``_get_json`` in a worker thread."""
        return await asyncio.to_thread(self._get_json, url, params, headers, timeout)


class OpenWeatherMapAdapter(HttpIntegrationAdapter):
    """Current conditions from the OpenWeatherMap API.

    Settings: ``apiKey``, ``lat``/``lon`` or ``city``, optional ``units``
    (defaults to imperial) and ``endpoint``.
    """

    id = "openweathermap"
    name = "OpenWeatherMap"
    type = IntegrationType.WEATHER

    ENDPOINT = "https://api.openweathermap.org/data/2.5/weather"

    async def fetch(self, config: IntegrationConfig) -> FetchResult:
        api_key = self.require_setting(config, "apiKey", "API Key")
        settings = config.settings
        params: Dict[str, Any] = {
            "appid": api_key,
            "units": settings.get("units", "imperial"),
        }
        if settings.get("lat") is not None and settings.get("lon") is not None:
            params["lat"] = settings["lat"]
            params["lon"] = settings["lon"]
        elif settings.get("city"):
            params["q"] = settings["city"]
        else:
            raise AdapterConfigError("Missing location (lat/lon or city)")

        return await self.get_json(settings.get("endpoint", self.ENDPOINT), params)

    def transform(self, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        main = data.get("main") or {}
        weather = data.get("weather") or [{}]
        return {
            "temp": main.get("temp"),
            "humidity": main.get("humidity"),
            "condition": str(weather[0].get("main", "unknown")).lower(),
            "location": data.get("name"),
        }


class MqttGatewayAdapter(HttpIntegrationAdapter):
    """Sensor readings from an MQTT gateway's HTTP bridge.

    The bridge answers with a JSON list of readings (or ``{"readings": [...]}``)
    shaped ``{externalId, type, value, unit, location}``. Settings:
    ``endpoint``, optional ``apiKey`` sent as a bearer token.
    """

    id = "mqtt_gateway"
    name = "MQTT Gateway"
    type = IntegrationType.SENSOR_HARDWARE

    async def fetch(self, config: IntegrationConfig) -> FetchResult:
        endpoint = self.require_setting(config, "endpoint", "gateway endpoint")
        headers = {}
        if config.settings.get("apiKey"):
            headers["Authorization"] = f"Bearer {config.settings['apiKey']}"
        return await self.get_json(endpoint, headers=headers)

    def transform(self, data: Any) -> Any:
        if isinstance(data, dict):
            data = data.get("readings", [])
        return data if isinstance(data, list) else []


class GeminiAdapter(HttpIntegrationAdapter):
    """Connectivity check against the Google Gemini API.

    Settings: ``apiKey``, optional ``endpoint``.
    """

    id = "google_gemini"
    name = "Google Gemini"
    type = IntegrationType.AI_ENGINE

    ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models"

    async def fetch(self, config: IntegrationConfig) -> FetchResult:
        api_key = self.require_setting(config, "apiKey", "API Key")
        endpoint = config.settings.get("endpoint", self.ENDPOINT)
        return await self.get_json(endpoint, headers={"x-goog-api-key": api_key})

    def transform(self, data: Any) -> Any:
        models = data.get("models", []) if isinstance(data, dict) else []
        return {
            "status": "connected",
            "models": [m.get("name") for m in models if isinstance(m, dict)],
        }


class AdapterRegistry:
    """Map of provider id to adapter instance."""

    def __init__(self, adapters: Optional[Iterable[IntegrationAdapter]] = None) -> None:
        """Initialize the registry.

        Args:
            adapters: Adapters to register up front
        """
        self._adapters: Dict[str, IntegrationAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: IntegrationAdapter) -> None:
        """Register an adapter under its id.

        Raises:
            ValueError: If the id is empty or already taken
        """
        if not adapter.id:
            raise ValueError(f"Adapter {adapter!r} has no id")
        if adapter.id in self._adapters:
            raise ValueError(f"Adapter {adapter.id} already registered")
        self._adapters[adapter.id] = adapter
        logger.debug("Registered adapter %s (%s)", adapter.id, adapter.type.value)

    def get(self, provider: str) -> Optional[IntegrationAdapter]:
        """Adapter for a provider, or None."""
        return self._adapters.get(provider)

    def require(self, provider: str) -> IntegrationAdapter:
        """Adapter for a provider.

        Raises:
            AdapterMissingError: If no adapter is registered
        """
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise AdapterMissingError(provider)
        return adapter

    def available(self) -> List[IntegrationAdapter]:
        """Registered adapters sorted by id."""
        return [self._adapters[key] for key in sorted(self._adapters)]

    def __contains__(self, provider: object) -> bool:
        return provider in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def default_registry(session: Optional[requests.Session] = None) -> AdapterRegistry:
    """Registry with the built-in adapters."""
    return AdapterRegistry(
        [
            OpenWeatherMapAdapter(session),
            MqttGatewayAdapter(session),
            GeminiAdapter(session),
        ]
    )
