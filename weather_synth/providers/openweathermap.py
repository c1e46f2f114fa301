"""OpenWeatherMap adapters: current weather 2.5 and One Call 3.0."""

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any

from weather_synth.core.config import settings
from weather_synth.core.errors import ProviderError
from weather_synth.core.logging import get_logger
from weather_synth.models.weather import UNKNOWN_DESCRIPTION, AirQuality, UVIndex, WeatherRecord
from weather_synth.providers.base import (
    CANONICAL_ICON,
    Condition,
    ConditionTable,
    HttpProvider,
    coordinate_label,
    first_text,
    ms_to_kmh,
    round_nearest,
)

logger = get_logger(__name__)

RAIN_GROUPS = frozenset({"Rain", "Drizzle"})

# Keyed by the condition group in weather[0].main
OPENWEATHER_CONDITIONS = ConditionTable(
    {
        "Thunderstorm": Condition("Thunderstorm", "11d"),
        "Drizzle": Condition("Drizzle", "09d"),
        "Rain": Condition("Rain", "10d"),
        "Snow": Condition("Snow", "13d"),
        "Clear": Condition("Clear", "01d"),
        "Clouds": Condition("Clouds", "04d"),
        "Mist": Condition("Mist", "50d"),
        "Smoke": Condition("Smoke", "50d"),
        "Haze": Condition("Haze", "50d"),
        "Dust": Condition("Dust", "50d"),
        "Fog": Condition("Fog", "50d"),
        "Sand": Condition("Sand", "50d"),
        "Ash": Condition("Volcanic ash", "50d"),
        "Squall": Condition("Squalls", "50d"),
        "Tornado": Condition("Tornado", "50d"),
    }
)


def openweather_condition(weather: Mapping[str, Any]) -> Condition:
    """Prefer the upstream description and icon, fall back to the group table."""
    fallback = OPENWEATHER_CONDITIONS.lookup(weather.get("main"))
    description = first_text(weather.get("description"))
    icon = weather.get("icon")
    return Condition(
        description.capitalize() if description else fallback.description,
        icon if isinstance(icon, str) and CANONICAL_ICON.match(icon) else fallback.icon,
    )


def place_label(name: Any, country: Any) -> str | None:
    name = first_text(name)
    country = first_text(country)
    if name and country:
        return f"{name}, {country}"
    return name


class OpenWeatherMapProvider(HttpProvider):
    """Current weather from the free-tier 2.5 API."""

    name = "openweathermap"
    requires_credential = True

    async def fetch(self, latitude: float, longitude: float) -> WeatherRecord:
        api_key = self._require_key()
        payload, status = await self._get_json(
            settings.openweather_api_url,
            params={"lat": latitude, "lon": longitude, "appid": api_key, "units": "metric"},
        )
        return self._build(lambda: self.transform(payload, latitude, longitude), status)

    def transform(self, data: Mapping[str, Any], latitude: float, longitude: float) -> WeatherRecord:
        main = data["main"]
        condition = openweather_condition(data["weather"][0])
        wind = data.get("wind") or {}
        sys = data.get("sys") or {}

        return WeatherRecord(
            temperature_celsius=round_nearest(main["temp"]),
            description=condition.description,
            location_label=place_label(data.get("name"), sys.get("country"))
            or coordinate_label(latitude, longitude),
            humidity_percent=round_nearest(main["humidity"]),
            wind_speed_kmh=round_nearest(ms_to_kmh(wind.get("speed") or 0)),
            icon_code=condition.icon,
            provider_name=self.name,
        )


class OpenWeatherMapOneCallProvider(HttpProvider):
    """One Call 3.0 API with reverse geocoding for the place name.

    Uses the same credential as the 2.5 adapter but needs the separate
    "One Call by Call" subscription on the OpenWeatherMap account. Besides
    the canonical fields it reports UV index, air quality, alerts and
    whether rain is expected in the next three hours.
    """

    name = "openweathermap-onecall"
    requires_credential = True

    async def fetch(self, latitude: float, longitude: float) -> WeatherRecord:
        api_key = self._require_key()
        geocoding = asyncio.create_task(self._reverse_geocode(latitude, longitude, api_key))
        try:
            payload, status = await self._get_json(
                settings.openweather_onecall_url,
                params={
                    "lat": latitude,
                    "lon": longitude,
                    "exclude": "minutely,daily",
                    "appid": api_key,
                    "units": "metric",
                },
            )
        except BaseException:
            geocoding.cancel()
            raise

        place = await geocoding
        return self._build(lambda: self.transform(payload, latitude, longitude, place), status)

    async def _reverse_geocode(self, latitude: float, longitude: float, api_key: str) -> str | None:
        try:
            results, _ = await self._get_json(
                settings.openweather_geocoding_url,
                params={"lat": latitude, "lon": longitude, "limit": 1, "appid": api_key},
            )
        except ProviderError as e:
            logger.warning("reverse_geocoding_failed", provider=self.name, error=str(e))
            return None

        if isinstance(results, list) and results and isinstance(results[0], Mapping):
            return place_label(results[0].get("name"), results[0].get("country"))
        return None

    def transform(
        self,
        data: Mapping[str, Any],
        latitude: float,
        longitude: float,
        place: str | None = None,
    ) -> WeatherRecord:
        current = data["current"]
        condition = openweather_condition(current["weather"][0])
        alerts = [alert for alert in data.get("alerts") or [] if isinstance(alert, Mapping)]

        return WeatherRecord(
            temperature_celsius=round_nearest(current["temp"]),
            description=condition.description,
            location_label=place or coordinate_label(latitude, longitude),
            humidity_percent=round_nearest(current["humidity"]),
            wind_speed_kmh=round_nearest(ms_to_kmh(current.get("wind_speed") or 0)),
            icon_code=condition.icon,
            provider_name=self.name,
            has_rain=rain_expected(data.get("hourly")),
            has_alerts=bool(alerts),
            alerts=[dict(alert) for alert in alerts],
            uv_index=uv_index(current.get("uvi")),
            air_quality=air_quality(current.get("air_quality")),
        )


def rain_expected(hourly: Any, hours: int = 3) -> bool:
    """True if any of the next ``hours`` hourly entries is rain or drizzle."""
    if not isinstance(hourly, Sequence):
        return False
    for hour in hourly[:hours]:
        weather = hour.get("weather") if isinstance(hour, Mapping) else None
        if not isinstance(weather, list) or not weather or not isinstance(weather[0], Mapping):
            continue
        if weather[0].get("main") in RAIN_GROUPS:
            return True
    return False


def uv_risk(value: float) -> str:
    if value <= 2:
        return "Low"
    if value <= 5:
        return "Moderate"
    if value <= 7:
        return "High"
    if value <= 10:
        return "Very High"
    return "Extreme"


def uv_protection(value: float) -> list[str]:
    if value <= 2:
        return ["No protection required", "You can safely stay outside"]
    if value <= 5:
        return ["Seek shade during midday hours", "Slip on a shirt, slop on sunscreen", "Slap on a hat"]
    if value <= 7:
        return [
            "Reduce time in the sun between 10 a.m. and 4 p.m.",
            "Wear protective clothing",
            "Apply sunscreen SPF 30+",
        ]
    if value <= 10:
        return [
            "Minimize sun exposure during midday hours",
            "Wear protective clothing",
            "Apply sunscreen SPF 30+",
            "Seek shade",
        ]
    return [
        "Avoid sun exposure during midday hours",
        "Take all precautions",
        "Unprotected skin will burn quickly",
    ]


def uv_index(value: Any) -> UVIndex | None:
    value = _number(value)
    if value is None:
        return None
    return UVIndex(value=value, risk=uv_risk(value), protection=uv_protection(value))


def aqi_category(aqi: float) -> str:
    """US EPA band for an air quality index value."""
    if aqi <= 50:
        return "Good"
    if aqi <= 100:
        return "Moderate"
    if aqi <= 150:
        return "Unhealthy for Sensitive Groups"
    if aqi <= 200:
        return "Unhealthy"
    if aqi <= 300:
        return "Very Unhealthy"
    return "Hazardous"


def air_quality(data: Any) -> AirQuality | None:
    if not isinstance(data, Mapping):
        return None

    index = _number(data.get("us-epa-index"))

    return AirQuality(
        index=index,
        category=aqi_category(index) if index is not None else UNKNOWN_DESCRIPTION,
        pollutants={
            name: _number(data.get(field))
            for name, field in (
                ("pm25", "pm2_5"),
                ("pm10", "pm10"),
                ("o3", "o3"),
                ("no2", "no2"),
                ("so2", "so2"),
                ("co", "co"),
            )
        },
    )


def _number(value: Any) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return None
