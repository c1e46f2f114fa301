"""Open-Meteo adapter. Free open data, no API key required."""

from collections.abc import Mapping
from typing import Any

from weather_synth.core.config import settings
from weather_synth.models.weather import WeatherRecord
from weather_synth.providers.base import (
    Condition,
    ConditionTable,
    HttpProvider,
    coordinate_label,
    ms_to_kmh,
    round_nearest,
)

# WMO weather interpretation codes
OPEN_METEO_CONDITIONS = ConditionTable(
    {
        0: Condition("Clear sky", "01d"),
        1: Condition("Mainly clear", "02d"),
        2: Condition("Partly cloudy", "03d"),
        3: Condition("Overcast", "04d"),
        45: Condition("Fog", "50d"),
        48: Condition("Depositing rime fog", "50d"),
        51: Condition("Light drizzle", "09d"),
        53: Condition("Moderate drizzle", "09d"),
        55: Condition("Dense drizzle", "09d"),
        56: Condition("Light freezing drizzle", "09d"),
        57: Condition("Dense freezing drizzle", "09d"),
        61: Condition("Slight rain", "10d"),
        63: Condition("Moderate rain", "10d"),
        65: Condition("Heavy rain", "10d"),
        66: Condition("Light freezing rain", "10d"),
        67: Condition("Heavy freezing rain", "10d"),
        71: Condition("Slight snow fall", "13d"),
        73: Condition("Moderate snow fall", "13d"),
        75: Condition("Heavy snow fall", "13d"),
        77: Condition("Snow grains", "13d"),
        80: Condition("Slight rain showers", "10d"),
        81: Condition("Moderate rain showers", "10d"),
        82: Condition("Violent rain showers", "10d"),
        85: Condition("Slight snow showers", "13d"),
        86: Condition("Heavy snow showers", "13d"),
        95: Condition("Thunderstorm", "11d"),
        96: Condition("Thunderstorm with slight hail", "11d"),
        99: Condition("Thunderstorm with heavy hail", "11d"),
    }
)


class OpenMeteoProvider(HttpProvider):
    name = "open-meteo"
    requires_credential = False

    async def fetch(self, latitude: float, longitude: float) -> WeatherRecord:
        payload, status = await self._get_json(
            settings.open_meteo_api_url,
            params={
                "latitude": latitude,
                "longitude": longitude,
                "current": "temperature_2m,relative_humidity_2m,weather_code,wind_speed_10m",
                "wind_speed_unit": "ms",
                "timezone": "auto",
            },
        )
        return self._build(lambda: self.transform(payload, latitude, longitude), status)

    def transform(self, data: Mapping[str, Any], latitude: float, longitude: float) -> WeatherRecord:
        current = data["current"]
        condition = OPEN_METEO_CONDITIONS.lookup(current.get("weather_code"))

        return WeatherRecord(
            temperature_celsius=round_nearest(current["temperature_2m"]),
            description=condition.description,
            location_label=coordinate_label(
                data.get("latitude", latitude), data.get("longitude", longitude)
            ),
            humidity_percent=round_nearest(current["relative_humidity_2m"]),
            wind_speed_kmh=round_nearest(ms_to_kmh(current["wind_speed_10m"])),
            icon_code=condition.icon,
            provider_name=self.name,
        )
