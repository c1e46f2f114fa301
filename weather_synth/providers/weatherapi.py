"""WeatherAPI.com current conditions adapter."""

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
    mph_to_kmh,
    round_nearest,
)
from weather_synth.providers.openweathermap import place_label

WEATHERAPI_CONDITIONS = ConditionTable(
    {
        1000: Condition("Sunny", "01d"),
        1003: Condition("Partly cloudy", "02d"),
        1006: Condition("Cloudy", "03d"),
        1009: Condition("Overcast", "04d"),
        1030: Condition("Mist", "50d"),
        1063: Condition("Patchy rain possible", "10d"),
        1066: Condition("Patchy snow possible", "13d"),
        1069: Condition("Patchy sleet possible", "13d"),
        1072: Condition("Patchy freezing drizzle possible", "09d"),
        1087: Condition("Thundery outbreaks possible", "11d"),
        1114: Condition("Blowing snow", "13d"),
        1117: Condition("Blizzard", "13d"),
        1135: Condition("Fog", "50d"),
        1147: Condition("Freezing fog", "50d"),
        1150: Condition("Patchy light drizzle", "09d"),
        1153: Condition("Light drizzle", "09d"),
        1168: Condition("Freezing drizzle", "09d"),
        1171: Condition("Heavy freezing drizzle", "09d"),
        1180: Condition("Patchy light rain", "10d"),
        1183: Condition("Light rain", "10d"),
        1186: Condition("Moderate rain at times", "10d"),
        1189: Condition("Moderate rain", "10d"),
        1192: Condition("Heavy rain at times", "10d"),
        1195: Condition("Heavy rain", "10d"),
        1198: Condition("Light freezing rain", "10d"),
        1201: Condition("Moderate or heavy freezing rain", "10d"),
        1204: Condition("Light sleet", "13d"),
        1207: Condition("Moderate or heavy sleet", "13d"),
        1210: Condition("Patchy light snow", "13d"),
        1213: Condition("Light snow", "13d"),
        1216: Condition("Patchy moderate snow", "13d"),
        1219: Condition("Moderate snow", "13d"),
        1222: Condition("Patchy heavy snow", "13d"),
        1225: Condition("Heavy snow", "13d"),
        1237: Condition("Ice pellets", "13d"),
        1240: Condition("Light rain shower", "10d"),
        1243: Condition("Moderate or heavy rain shower", "10d"),
        1246: Condition("Torrential rain shower", "10d"),
        1249: Condition("Light sleet showers", "13d"),
        1252: Condition("Moderate or heavy sleet showers", "13d"),
        1255: Condition("Light snow showers", "13d"),
        1258: Condition("Moderate or heavy snow showers", "13d"),
        1261: Condition("Light showers of ice pellets", "13d"),
        1264: Condition("Moderate or heavy showers of ice pellets", "13d"),
        1273: Condition("Patchy light rain with thunder", "11d"),
        1276: Condition("Moderate or heavy rain with thunder", "11d"),
        1279: Condition("Patchy light snow with thunder", "11d"),
        1282: Condition("Moderate or heavy snow with thunder", "11d"),
    }
)


class WeatherAPIProvider(HttpProvider):
    name = "weatherapi"
    requires_credential = True

    async def fetch(self, latitude: float, longitude: float) -> WeatherRecord:
        api_key = self._require_key()
        payload, status = await self._get_json(
            settings.weatherapi_api_url,
            params={"key": api_key, "q": f"{latitude},{longitude}", "aqi": "no"},
        )
        return self._build(lambda: self.transform(payload, latitude, longitude), status)

    def transform(self, data: Mapping[str, Any], latitude: float, longitude: float) -> WeatherRecord:
        current = data["current"]
        location = data.get("location") or {}
        upstream = current.get("condition") or {}
        condition = WEATHERAPI_CONDITIONS.lookup(upstream.get("code"))

        # wind_kph is native; older payloads only carry wind_mph
        if current.get("wind_kph") is not None:
            wind_kmh = float(current["wind_kph"])
        else:
            wind_kmh = mph_to_kmh(current["wind_mph"])

        return WeatherRecord(
            temperature_celsius=round_nearest(current["temp_c"]),
            description=first_text(upstream.get("text")) or condition.description,
            location_label=place_label(location.get("name"), location.get("country"))
            or coordinate_label(latitude, longitude),
            humidity_percent=round_nearest(current["humidity"]),
            wind_speed_kmh=round_nearest(wind_kmh),
            icon_code=condition.icon,
            provider_name=self.name,
        )
