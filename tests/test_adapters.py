"""Tests for integration adapters and the adapter registry."""

import asyncio
from unittest.mock import Mock

import pytest
import requests

from homestead_sync.core.integrations import (
    AdapterRegistry,
    GeminiAdapter,
    MqttGatewayAdapter,
    OpenWeatherMapAdapter,
    default_registry,
)
from homestead_sync.exceptions import AdapterConfigError, AdapterMissingError
from homestead_sync.models import IntegrationConfig, IntegrationType


def make_config(provider, settings=None, integration_type=IntegrationType.WEATHER):
    return IntegrationConfig(
        name=f"{provider} test",
        provider=provider,
        type=integration_type,
        settings=settings or {},
    )


@pytest.fixture
def session():
    """Mocked requests session answering with an empty object."""
    session = Mock(spec=requests.Session)
    response = Mock(spec=requests.Response)
    response.json.return_value = {}
    session.get.return_value = response
    return session


def answer(session, payload):
    session.get.return_value.json.return_value = payload


class TestAdapterRegistry:
    """Test adapter registration and lookup."""

    def test_default_registry(self):
        """Built-in adapters are available by id."""
        registry = default_registry()
        assert [a.id for a in registry.available()] == [
            "google_gemini",
            "mqtt_gateway",
            "openweathermap",
        ]
        assert "openweathermap" in registry
        assert len(registry) == 3

    def test_duplicate_id_rejected(self):
        """Two adapters cannot share an id."""
        registry = AdapterRegistry([OpenWeatherMapAdapter()])
        with pytest.raises(ValueError, match="already registered"):
            registry.register(OpenWeatherMapAdapter())

    def test_require_missing(self):
        """Unknown providers raise with the provider in the message."""
        registry = AdapterRegistry()
        assert registry.get("nope") is None
        with pytest.raises(AdapterMissingError, match="Adapter nope not found"):
            registry.require("nope")


class TestOpenWeatherMapAdapter:
    """Test the weather adapter."""

    def test_fetch_by_coordinates(self, session):
        """Coordinates and the key are sent as query parameters."""
        answer(session, {"main": {"temp": 71.2, "humidity": 40}})
        adapter = OpenWeatherMapAdapter(session)
        config = make_config("openweathermap", {"apiKey": "k", "lat": 1.5, "lon": 2.5})

        result = asyncio.run(adapter.fetch(config))

        assert result.success
        params = session.get.call_args.kwargs["params"]
        assert params == {"appid": "k", "units": "imperial", "lat": 1.5, "lon": 2.5}

    def test_fetch_by_city(self, session):
        """A city name is sent as ``q``."""
        adapter = OpenWeatherMapAdapter(session)
        config = make_config("openweathermap", {"apiKey": "k", "city": "Asheville"})

        asyncio.run(adapter.fetch(config))

        assert session.get.call_args.kwargs["params"]["q"] == "Asheville"

    def test_missing_api_key(self, session):
        """Fetching without a key is a configuration error."""
        adapter = OpenWeatherMapAdapter(session)
        with pytest.raises(AdapterConfigError, match="Missing API Key"):
            asyncio.run(adapter.fetch(make_config("openweathermap", {"city": "x"})))
        session.get.assert_not_called()

    def test_missing_location(self, session):
        """A key alone is not enough."""
        adapter = OpenWeatherMapAdapter(session)
        with pytest.raises(AdapterConfigError, match="location"):
            asyncio.run(adapter.fetch(make_config("openweathermap", {"apiKey": "k"})))

    def test_http_error_is_failure(self, session):
        """HTTP errors become failed fetch results."""
        response = Mock(spec=requests.Response)
        response.status_code = 401
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError(
            response=response
        )
        adapter = OpenWeatherMapAdapter(session)
        config = make_config("openweathermap", {"apiKey": "bad", "city": "x"})

        result = asyncio.run(adapter.fetch(config))

        assert not result.success
        assert result.error == "HTTP 401 from OpenWeatherMap"

    def test_unreachable_is_failure(self, session):
        """Connection errors become failed fetch results."""
        session.get.side_effect = requests.ConnectionError("no route")
        adapter = OpenWeatherMapAdapter(session)
        config = make_config("openweathermap", {"apiKey": "k", "city": "x"})

        result = asyncio.run(adapter.fetch(config))

        assert not result.success
        assert "unreachable" in result.error

    def test_transform(self):
        """The payload is reduced to the observation fields."""
        data = {
            "name": "Asheville",
            "main": {"temp": 68.0, "humidity": 55},
            "weather": [{"main": "Rain"}],
        }
        assert OpenWeatherMapAdapter().transform(data) == {
            "temp": 68.0,
            "humidity": 55,
            "condition": "rain",
            "location": "Asheville",
        }


class TestMqttGatewayAdapter:
    """Test the sensor gateway adapter."""

    def test_requires_endpoint(self, session):
        """The gateway endpoint is mandatory."""
        adapter = MqttGatewayAdapter(session)
        config = make_config("mqtt_gateway", integration_type=IntegrationType.SENSOR_HARDWARE)
        with pytest.raises(AdapterConfigError, match="Missing gateway endpoint"):
            asyncio.run(adapter.fetch(config))

    def test_sends_bearer_token(self, session):
        """An API key is sent as a bearer token."""
        answer(session, [])
        adapter = MqttGatewayAdapter(session)
        config = make_config(
            "mqtt_gateway",
            {"endpoint": "http://gateway.local/readings", "apiKey": "t0k"},
            IntegrationType.SENSOR_HARDWARE,
        )

        asyncio.run(adapter.fetch(config))

        assert session.get.call_args.args[0] == "http://gateway.local/readings"
        assert session.get.call_args.kwargs["headers"] == {"Authorization": "Bearer t0k"}

    @pytest.mark.parametrize(
        "payload, expected",
        [
            ([{"externalId": "a"}], [{"externalId": "a"}]),
            ({"readings": [{"externalId": "b"}]}, [{"externalId": "b"}]),
            ("garbage", []),
        ],
    )
    def test_transform(self, payload, expected):
        """Lists and ``readings`` envelopes are accepted."""
        assert MqttGatewayAdapter().transform(payload) == expected


class TestGeminiAdapter:
    """Test the AI engine connectivity check."""

    def test_sends_key_header(self, session):
        """The key travels in the Gemini header."""
        answer(session, {"models": [{"name": "models/gemini-pro"}]})
        adapter = GeminiAdapter(session)
        config = make_config("google_gemini", {"apiKey": "g"}, IntegrationType.AI_ENGINE)

        result = asyncio.run(adapter.fetch(config))

        assert session.get.call_args.kwargs["headers"] == {"x-goog-api-key": "g"}
        assert adapter.transform(result.data) == {
            "status": "connected",
            "models": ["models/gemini-pro"],
        }

    def test_blank_api_key(self, session):
        """A blank key counts as missing."""
        adapter = GeminiAdapter(session)
        config = make_config("google_gemini", {"apiKey": "  "}, IntegrationType.AI_ENGINE)
        with pytest.raises(AdapterConfigError, match="Missing API Key"):
            asyncio.run(adapter.fetch(config))
