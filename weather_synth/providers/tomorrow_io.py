"""Tomorrow.io realtime weather adapter."""

from collections.abc import Mapping
from typing import Any

from weather_synth.core.config import settings
from weather_synth.models.weather import WeatherRecord
from weather_synth.providers.base import (
    Condition,
    ConditionTable,
    HttpProvider,
    coordinate_label,
    first_text,
    ms_to_kmh,
    round_nearest,
)

TOMORROW_CONDITIONS = ConditionTable(
    {
        1000: Condition("Clear", "01d"),
        1100: Condition("Mostly Clear", "02d"),
        1101: Condition("Partly Cloudy", "03d"),
        1102: Condition("Mostly Cloudy", "04d"),
        1001: Condition("Cloudy", "04d"),
        2000: Condition("Fog", "50d"),
        2100: Condition("Light Fog", "50d"),
        4000: Condition("Drizzle", "09d"),
        4001: Condition("Rain", "10d"),
        4200: Condition("Light Rain", "10d"),
        4201: Condition("Heavy Rain", "10d"),
        5000: Condition("Snow", "13d"),
        5001: Condition("Flurries", "13d"),
        5100: Condition("Light Snow", "13d"),
        5101: Condition("Heavy Snow", "13d"),
        6000: Condition("Freezing Drizzle", "09d"),
        6001: Condition("Freezing Rain", "10d"),
        6200: Condition("Light Freezing Rain", "10d"),
        6201: Condition("Heavy Freezing Rain", "10d"),
        7000: Condition("Ice Pellets", "13d"),
        7101: Condition("Heavy Ice Pellets", "13d"),
        7102: Condition("Light Ice Pellets", "13d"),
        8000: Condition("Thunderstorm", "11d"),
    }
)


class TomorrowIOProvider(HttpProvider):
    name = "tomorrow-io"
    requires_credential = True

    async def fetch(self, latitude: float, longitude: float) -> WeatherRecord:
        api_key = self._require_key()
        payload, status = await self._get_json(
            settings.tomorrow_api_url,
            params={"location": f"{latitude},{longitude}", "apikey": api_key, "units": "metric"},
        )
        return self._build(lambda: self.transform(payload, latitude, longitude), status)

    def transform(self, data: Mapping[str, Any], latitude: float, longitude: float) -> WeatherRecord:
        values = data["data"]["values"]
        location = data.get("location") or {}
        condition = TOMORROW_CONDITIONS.lookup(values.get("weatherCode"))

        label = first_text(location.get("name"))
        if label is None:
            label = coordinate_label(location.get("lat", latitude), location.get("lon", longitude))

        return WeatherRecord(
            temperature_celsius=round_nearest(values["temperature"]),
            description=condition.description,
            location_label=label,
            humidity_percent=round_nearest(values["humidity"]),
            wind_speed_kmh=round_nearest(ms_to_kmh(values["windSpeed"])),
            icon_code=condition.icon,
            provider_name=self.name,
        )
