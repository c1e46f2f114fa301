"""Unit tests for the upstream provider adapters."""

import asyncio

import httpx
import pytest

from weather_synth.core.errors import (
    UpstreamHttpError,
    UpstreamParseError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from weather_synth.models.weather import DEFAULT_ICON, UNKNOWN_DESCRIPTION
from weather_synth.providers.base import WeatherProvider, round_nearest
from weather_synth.providers.open_meteo import OpenMeteoProvider
from weather_synth.providers.openweathermap import (
    OpenWeatherMapOneCallProvider,
    OpenWeatherMapProvider,
    aqi_category,
    uv_risk,
)
from weather_synth.providers.tomorrow_io import TomorrowIOProvider
from weather_synth.providers.visual_crossing import VisualCrossingProvider
from weather_synth.providers.weatherapi import WeatherAPIProvider

NYC = (40.7128, -74.0060)

ADAPTERS = {
    "openweathermap": (OpenWeatherMapProvider, "openweather_payload"),
    "openweathermap-onecall": (OpenWeatherMapOneCallProvider, "onecall_payload"),
    "tomorrow-io": (TomorrowIOProvider, "tomorrow_payload"),
    "weatherapi": (WeatherAPIProvider, "weatherapi_payload"),
    "visual-crossing": (VisualCrossingProvider, "visual_crossing_payload"),
    "open-meteo": (OpenMeteoProvider, "open_meteo_payload"),
}
CREDENTIALED = [name for name in ADAPTERS if name != "open-meteo"]


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def respond(payload, status=200, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=payload)

    return handler


def build(name, handler, api_key="test-key"):
    cls, _ = ADAPTERS[name]
    return cls(mock_client(handler), lambda: api_key)


def test_round_nearest_rounds_halves_up():
    assert round_nearest(22.4) == 22
    assert round_nearest(22.5) == 23
    assert round_nearest(11.88) == 12
    assert round_nearest(-0.5) == 0
    assert round_nearest(-2.6) == -3
    # halves go towards +infinity, not away from zero
    assert round_nearest(-2.5) == -2


@pytest.mark.parametrize("name", list(ADAPTERS))
def test_adapters_satisfy_provider_protocol(name):
    provider = build(name, respond({}))
    assert isinstance(provider, WeatherProvider)
    assert provider.name == name


@pytest.mark.asyncio
@pytest.mark.parametrize("name", list(ADAPTERS))
async def test_well_formed_payload_populates_every_field(name, request):
    payload = request.getfixturevalue(ADAPTERS[name][1])
    provider = build(name, respond(payload))

    record = await provider.fetch(*NYC)

    assert record.provider_name == name
    assert record.temperature_celsius == 22
    assert record.humidity_percent == 65
    assert record.wind_speed_kmh == 12
    assert record.icon_code == "01d"
    assert record.description
    assert record.location_label
    assert record.is_mock_data is False


@pytest.mark.asyncio
async def test_tomorrow_io_clear_scenario(tomorrow_payload):
    """22.4C, 65%, 3.3 m/s and code clear normalize to the canonical record."""
    seen = []
    provider = TomorrowIOProvider(mock_client(respond(tomorrow_payload, seen=seen)), lambda: "key")

    record = await provider.fetch(*NYC)

    assert record.temperature_celsius == 22
    assert record.humidity_percent == 65
    assert record.wind_speed_kmh == 12
    assert record.description == "Clear"
    assert record.icon_code == "01d"
    assert record.location_label == "New York, United States"
    assert seen[0].url.params["location"] == "40.7128,-74.006"
    assert seen[0].url.params["units"] == "metric"


@pytest.mark.asyncio
async def test_openweathermap_maps_description_and_location(openweather_payload):
    seen = []
    provider = OpenWeatherMapProvider(mock_client(respond(openweather_payload, seen=seen)), lambda: "owm")

    record = await provider.fetch(*NYC)

    assert record.description == "Clear sky"
    assert record.location_label == "New York, US"
    assert seen[0].url.params["appid"] == "owm"
    assert seen[0].url.params["units"] == "metric"


@pytest.mark.asyncio
async def test_openweathermap_rejects_non_canonical_icon(openweather_payload):
    openweather_payload["weather"][0]["icon"] = "sunny.png"
    provider = OpenWeatherMapProvider(mock_client(respond(openweather_payload)), lambda: "owm")

    record = await provider.fetch(*NYC)

    assert record.icon_code == "01d"


@pytest.mark.asyncio
async def test_openweathermap_without_place_name_uses_coordinates(openweather_payload):
    del openweather_payload["name"]
    provider = OpenWeatherMapProvider(mock_client(respond(openweather_payload)), lambda: "owm")

    record = await provider.fetch(*NYC)

    assert record.location_label == "40.7128, -74.0060"


@pytest.mark.asyncio
async def test_onecall_uses_reverse_geocoded_place(onecall_payload):
    def handler(request):
        if "/geo/" in request.url.path:
            return httpx.Response(200, json=[{"name": "New York", "country": "US"}])
        return httpx.Response(200, json=onecall_payload)

    provider = OpenWeatherMapOneCallProvider(mock_client(handler), lambda: "owm")

    record = await provider.fetch(*NYC)

    assert record.location_label == "New York, US"
    assert record.description == "Clear sky"


@pytest.mark.asyncio
async def test_onecall_survives_geocoding_failure(onecall_payload):
    def handler(request):
        if "/geo/" in request.url.path:
            return httpx.Response(503, json={"message": "unavailable"})
        return httpx.Response(200, json=onecall_payload)

    provider = OpenWeatherMapOneCallProvider(mock_client(handler), lambda: "owm")

    record = await provider.fetch(*NYC)

    assert record.location_label == "40.7128, -74.0060"


@pytest.mark.asyncio
async def test_weatherapi_converts_mph_when_kph_missing(weatherapi_payload):
    del weatherapi_payload["current"]["wind_kph"]
    provider = WeatherAPIProvider(mock_client(respond(weatherapi_payload)), lambda: "wa")

    record = await provider.fetch(*NYC)

    # 7.4 mph is 11.9 km/h
    assert record.wind_speed_kmh == 12
    assert record.description == "Sunny"
    assert record.location_label == "New York, United States of America"


@pytest.mark.asyncio
async def test_visual_crossing_reverse_geocodes_coordinate_address(visual_crossing_payload):
    visual_crossing_payload["resolvedAddress"] = "40.7128,-74.006"
    seen = []

    def handler(request):
        seen.append(request)
        if request.url.host == "nominatim.openstreetmap.org":
            return httpx.Response(
                200,
                json={"address": {"city": "New York", "state": "New York", "country": "United States"}},
            )
        return httpx.Response(200, json=visual_crossing_payload)

    provider = VisualCrossingProvider(mock_client(handler), lambda: "vc")

    record = await provider.fetch(*NYC)

    assert record.location_label == "New York, New York"
    assert seen[1].headers["User-Agent"].startswith("WeatherSynth")


@pytest.mark.asyncio
async def test_visual_crossing_geocoding_failure_falls_back_to_coordinates(visual_crossing_payload):
    visual_crossing_payload["resolvedAddress"] = "40.7128,-74.006"

    def handler(request):
        if request.url.host == "nominatim.openstreetmap.org":
            raise httpx.ConnectError("nominatim down", request=request)
        return httpx.Response(200, json=visual_crossing_payload)

    provider = VisualCrossingProvider(mock_client(handler), lambda: "vc")

    record = await provider.fetch(*NYC)

    assert record.location_label == "40.7128, -74.0060"


@pytest.mark.asyncio
async def test_open_meteo_requests_metres_per_second(open_meteo_payload):
    seen = []
    provider = OpenMeteoProvider(mock_client(respond(open_meteo_payload, seen=seen)))

    record = await provider.fetch(*NYC)

    assert seen[0].url.params["wind_speed_unit"] == "ms"
    assert record.description == "Clear sky"
    assert record.location_label == "40.7103, -73.9931"


def test_open_meteo_needs_no_credential():
    provider = OpenMeteoProvider(mock_client(respond({})))

    assert provider.requires_credential is False
    assert provider.is_available() is True


UNKNOWN_CODE_PAYLOADS = {
    "openweathermap": lambda p: p["weather"].__setitem__(0, {"id": 999, "main": "Meteor"}),
    "openweathermap-onecall": lambda p: p["current"]["weather"].__setitem__(0, {"main": "Meteor"}),
    "tomorrow-io": lambda p: p["data"]["values"].__setitem__("weatherCode", 9999),
    "weatherapi": lambda p: p["current"].__setitem__("condition", {"code": 9999}),
    "visual-crossing": lambda p: p["currentConditions"].update(icon="meteor-shower", conditions=""),
    "open-meteo": lambda p: p["current"].__setitem__("weather_code", 1234),
}


@pytest.mark.asyncio
@pytest.mark.parametrize("name", list(ADAPTERS))
async def test_unknown_condition_code_uses_defaults(name, request):
    payload = request.getfixturevalue(ADAPTERS[name][1])
    UNKNOWN_CODE_PAYLOADS[name](payload)
    provider = build(name, respond(payload))

    record = await provider.fetch(*NYC)

    assert record.description == UNKNOWN_DESCRIPTION
    assert record.icon_code == DEFAULT_ICON


UNMAPPED_CODE_WITH_TEXT = {
    "openweathermap": lambda p: p["weather"].__setitem__(
        0, {"id": 999, "main": "Meteor", "description": "volcanic ash"}
    ),
    "openweathermap-onecall": lambda p: p["current"]["weather"].__setitem__(
        0, {"main": "Meteor", "description": "volcanic ash"}
    ),
    "weatherapi": lambda p: p["current"].__setitem__("condition", {"code": 9999, "text": "Volcanic ash"}),
    "visual-crossing": lambda p: p["currentConditions"].update(icon="meteor-shower", conditions="Volcanic ash"),
}


@pytest.mark.asyncio
@pytest.mark.parametrize("name", list(UNMAPPED_CODE_WITH_TEXT))
async def test_unmapped_code_keeps_upstream_text(name, request):
    payload = request.getfixturevalue(ADAPTERS[name][1])
    UNMAPPED_CODE_WITH_TEXT[name](payload)
    provider = build(name, respond(payload))

    record = await provider.fetch(*NYC)

    assert record.description == "Volcanic ash"
    assert record.icon_code == DEFAULT_ICON


@pytest.mark.asyncio
@pytest.mark.parametrize("name", CREDENTIALED)
async def test_missing_credential_is_unavailable(name):
    seen = []
    provider = build(name, respond({}, seen=seen), api_key=None)

    assert provider.is_available() is False
    with pytest.raises(UpstreamUnavailable):
        await provider.fetch(*NYC)
    assert seen == []


def test_blank_credential_is_unavailable():
    provider = TomorrowIOProvider(mock_client(respond({})), lambda: "   ")

    assert provider.is_available() is False


def test_credential_is_read_on_every_call():
    credentials = {"key": None}
    provider = WeatherAPIProvider(mock_client(respond({})), lambda: credentials["key"])

    assert provider.is_available() is False
    credentials["key"] = "now-set"
    assert provider.is_available() is True


@pytest.mark.asyncio
@pytest.mark.parametrize("name", list(ADAPTERS))
async def test_non_success_status_raises_http_error(name):
    provider = build(name, respond({"message": "Invalid API key"}, status=401))

    with pytest.raises(UpstreamHttpError) as exc_info:
        await provider.fetch(*NYC)

    assert exc_info.value.status == 401
    assert exc_info.value.provider == name


@pytest.mark.asyncio
async def test_timeout_raises_upstream_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    provider = OpenMeteoProvider(mock_client(handler))

    with pytest.raises(UpstreamTimeout) as exc_info:
        await provider.fetch(*NYC)

    # timeouts are handled like HTTP errors by the fallback chain
    assert isinstance(exc_info.value, UpstreamHttpError)
    assert exc_info.value.status == 504


@pytest.mark.asyncio
async def test_connection_error_raises_http_error_without_status():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = OpenMeteoProvider(mock_client(handler))

    with pytest.raises(UpstreamHttpError) as exc_info:
        await provider.fetch(*NYC)

    assert exc_info.value.status is None


@pytest.mark.asyncio
@pytest.mark.parametrize("name", list(ADAPTERS))
async def test_unexpected_shape_raises_parse_error(name):
    provider = build(name, respond({"unexpected": True}))

    with pytest.raises(UpstreamParseError) as exc_info:
        await provider.fetch(*NYC)

    assert exc_info.value.status == 200


@pytest.mark.asyncio
async def test_non_json_body_raises_parse_error():
    provider = OpenMeteoProvider(
        mock_client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
    )

    with pytest.raises(UpstreamParseError):
        await provider.fetch(*NYC)


@pytest.mark.asyncio
async def test_onecall_reports_uv_index_and_no_rain(onecall_payload):
    provider = build("openweathermap-onecall", respond(onecall_payload))

    record = await provider.fetch(*NYC)

    assert record.uv_index.value == 5.1
    assert record.uv_index.risk == "Moderate"
    assert record.uv_index.protection[0] == "Seek shade during midday hours"
    assert record.has_rain is False
    assert record.has_alerts is False
    assert record.alerts == []
    assert record.air_quality is None


@pytest.mark.asyncio
async def test_onecall_reports_rain_alerts_and_air_quality(onecall_payload):
    onecall_payload["hourly"] = [
        {"weather": [{"main": "Clouds"}]},
        {"weather": [{"main": "Drizzle"}]},
        {"weather": [{"main": "Clear"}]},
    ]
    onecall_payload["alerts"] = [{"event": "Heat Advisory", "sender_name": "NWS New York"}]
    onecall_payload["current"]["air_quality"] = {"us-epa-index": 42, "pm2_5": 8.1, "o3": 61.0}
    provider = build("openweathermap-onecall", respond(onecall_payload))

    record = await provider.fetch(*NYC)
    data = record.model_dump(by_alias=True)

    assert data["hasRain"] is True
    assert data["hasAlerts"] is True
    assert data["alerts"][0]["event"] == "Heat Advisory"
    assert data["airQuality"]["index"] == 42
    assert data["airQuality"]["category"] == "Good"
    assert data["airQuality"]["pollutants"]["pm25"] == 8.1
    assert data["airQuality"]["pollutants"]["co"] is None
    assert data["uvIndex"]["risk"] == "Moderate"


@pytest.mark.asyncio
async def test_onecall_only_checks_next_three_hours_for_rain(onecall_payload):
    onecall_payload["hourly"] = [{"weather": [{"main": "Clear"}]}] * 3 + [{"weather": [{"main": "Rain"}]}]
    provider = build("openweathermap-onecall", respond(onecall_payload))

    record = await provider.fetch(*NYC)

    assert record.has_rain is False


@pytest.mark.asyncio
async def test_other_adapters_leave_extras_empty(openweather_payload):
    provider = build("openweathermap", respond(openweather_payload))

    record = await provider.fetch(*NYC)

    assert record.uv_index is None
    assert record.has_rain is None
    assert record.air_quality is None


@pytest.mark.parametrize(
    "value, risk",
    [(0, "Low"), (2, "Low"), (2.1, "Moderate"), (6, "High"), (10, "Very High"), (11.5, "Extreme")],
)
def test_uv_risk_bands(value, risk):
    assert uv_risk(value) == risk


@pytest.mark.parametrize(
    "aqi, category",
    [
        (50, "Good"),
        (51, "Moderate"),
        (150, "Unhealthy for Sensitive Groups"),
        (200, "Unhealthy"),
        (300, "Very Unhealthy"),
        (301, "Hazardous"),
    ],
)
def test_aqi_categories(aqi, category):
    assert aqi_category(aqi) == category


@pytest.mark.asyncio
async def test_onecall_cancels_geocoding_when_weather_call_fails():
    geocoding_started = asyncio.Event()
    geocoding = {"cancelled": False, "finished": False}

    async def handler(request):
        if "/geo/" in request.url.path:
            geocoding_started.set()
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                geocoding["cancelled"] = True
                raise
            geocoding["finished"] = True
            return httpx.Response(200, json=[])
        await geocoding_started.wait()
        return httpx.Response(500, json={"message": "internal error"})

    provider = OpenWeatherMapOneCallProvider(mock_client(handler), lambda: "owm")

    with pytest.raises(UpstreamHttpError):
        await provider.fetch(*NYC)
    for _ in range(5):
        await asyncio.sleep(0)

    assert geocoding["cancelled"] is True
    assert geocoding["finished"] is False
