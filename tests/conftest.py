"""Test configuration and fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient

from stubs import FakeClock, StubProvider, make_record
from weather_synth.main import app
from weather_synth.middleware.rate_limit import limiter
from weather_synth.providers.registry import ProviderRegistry
from weather_synth.services.cache import CacheService
from weather_synth.services.fallback import FallbackOrchestrator
from weather_synth.services.weather import WeatherService


@pytest.fixture(autouse=True)
def reset_rate_limiter(monkeypatch):
    """Start every test with empty limits and limiting switched off."""
    limiter.reset()
    monkeypatch.setattr(limiter, "enabled", False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheService(ttl=3600, clock=clock)


@pytest.fixture
def primary_provider():
    return StubProvider(
        "openweathermap",
        requires_credential=True,
        record=make_record("openweathermap", description="Clear sky"),
    )


@pytest.fixture
def fallback_provider():
    return StubProvider("open-meteo", record=make_record("open-meteo", location_label="40.7128, -74.0060"))


@pytest.fixture
def registry(primary_provider, fallback_provider):
    return ProviderRegistry({p.name: p for p in (primary_provider, fallback_provider)})


@pytest.fixture
def weather_service(registry, cache):
    orchestrator = FallbackOrchestrator(
        registry,
        "openweathermap",
        "open-meteo",
        demo_fallback=True,
        attempt_timeout=1.0,
    )
    return WeatherService(registry=registry, orchestrator=orchestrator, cache=cache)


@pytest.fixture
async def client(weather_service):
    """HTTP client bound to the app with the stubbed weather service."""
    app.state.weather_service = weather_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def openweather_payload():
    """OpenWeatherMap 2.5 current weather response."""
    return {
        "coord": {"lon": -74.006, "lat": 40.7128},
        "weather": [{"id": 800, "main": "Clear", "description": "clear sky", "icon": "01d"}],
        "main": {"temp": 22.4, "feels_like": 22.1, "humidity": 65, "pressure": 1015},
        "wind": {"speed": 3.3, "deg": 200},
        "sys": {"country": "US"},
        "name": "New York",
    }


@pytest.fixture
def tomorrow_payload():
    """Tomorrow.io realtime response."""
    return {
        "data": {
            "time": "2024-06-01T12:00:00Z",
            "values": {
                "temperature": 22.4,
                "humidity": 65,
                "windSpeed": 3.3,
                "weatherCode": 1000,
            },
        },
        "location": {"lat": 40.7128, "lon": -74.006, "name": "New York, United States"},
    }


@pytest.fixture
def weatherapi_payload():
    """WeatherAPI.com current.json response."""
    return {
        "location": {"name": "New York", "country": "United States of America"},
        "current": {
            "temp_c": 22.4,
            "humidity": 65,
            "wind_kph": 11.9,
            "wind_mph": 7.4,
            "condition": {"text": "Sunny", "code": 1000},
        },
    }


@pytest.fixture
def visual_crossing_payload():
    """Visual Crossing timeline response with current conditions."""
    return {
        "resolvedAddress": "New York, NY, United States",
        "currentConditions": {
            "temp": 22.4,
            "humidity": 65.2,
            "windspeed": 11.9,
            "conditions": "Clear",
            "icon": "clear-day",
        },
    }


@pytest.fixture
def open_meteo_payload():
    """Open-Meteo forecast response requested with wind_speed_unit=ms."""
    return {
        "latitude": 40.710335,
        "longitude": -73.99307,
        "current": {
            "time": "2024-06-01T12:00",
            "temperature_2m": 22.4,
            "relative_humidity_2m": 65,
            "weather_code": 0,
            "wind_speed_10m": 3.3,
        },
    }


@pytest.fixture
def onecall_payload():
    """OpenWeatherMap One Call 3.0 response."""
    return {
        "lat": 40.7128,
        "lon": -74.006,
        "current": {
            "temp": 22.4,
            "humidity": 65,
            "wind_speed": 3.3,
            "uvi": 5.1,
            "weather": [{"id": 800, "main": "Clear", "description": "clear sky", "icon": "01d"}],
        },
        "hourly": [],
    }
