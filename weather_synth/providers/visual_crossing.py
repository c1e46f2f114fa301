"""Visual Crossing timeline adapter with Nominatim reverse geocoding."""

import re
from collections.abc import Mapping
from typing import Any

from weather_synth.core.config import settings
from weather_synth.core.errors import ProviderError
from weather_synth.core.logging import get_logger
from weather_synth.models.weather import WeatherRecord
from weather_synth.providers.base import (
    Condition,
    ConditionTable,
    HttpProvider,
    coordinate_label,
    first_text,
    round_nearest,
)

logger = get_logger(__name__)

VISUAL_CROSSING_CONDITIONS = ConditionTable(
    {
        "clear-day": Condition("Clear", "01d"),
        "clear-night": Condition("Clear", "01n"),
        "partly-cloudy-day": Condition("Partly cloudy", "02d"),
        "partly-cloudy-night": Condition("Partly cloudy", "02n"),
        "cloudy": Condition("Cloudy", "04d"),
        "fog": Condition("Fog", "50d"),
        "wind": Condition("Windy", "50d"),
        "rain": Condition("Rain", "10d"),
        "snow": Condition("Snow", "13d"),
        "snow-showers-day": Condition("Snow showers", "13d"),
        "snow-showers-night": Condition("Snow showers", "13n"),
        "thunder-rain": Condition("Thunderstorm", "11d"),
        "thunder-showers-day": Condition("Thunder showers", "11d"),
        "thunder-showers-night": Condition("Thunder showers", "11n"),
        "showers-day": Condition("Showers", "09d"),
        "showers-night": Condition("Showers", "09n"),
    }
)

# resolvedAddress is a bare "lat,lon" pair when no place name is known
COORDINATE_ADDRESS = re.compile(r"^\s*-?\d+(\.\d+)?\s*,\s*-?\d+(\.\d+)?\s*$")


class VisualCrossingProvider(HttpProvider):
    name = "visual-crossing"
    requires_credential = True

    async def fetch(self, latitude: float, longitude: float) -> WeatherRecord:
        api_key = self._require_key()
        payload, status = await self._get_json(
            f"{settings.visual_crossing_api_url}/{latitude},{longitude}",
            params={
                "unitGroup": "metric",
                "include": "current",
                "key": api_key,
                "contentType": "json",
            },
        )
        record = self._build(lambda: self.transform(payload, latitude, longitude), status)

        if COORDINATE_ADDRESS.match(record.location_label):
            label = await self.reverse_geocode(latitude, longitude)
            record = record.model_copy(update={"location_label": label})
        return record

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        """Resolve a place name through OpenStreetMap Nominatim.

        Never raises: any failure degrades to the coordinate label.
        """
        try:
            data, _ = await self._get_json(
                settings.nominatim_api_url,
                params={
                    "format": "json",
                    "lat": latitude,
                    "lon": longitude,
                    "zoom": 10,
                    "addressdetails": 1,
                },
                headers={
                    "User-Agent": settings.nominatim_user_agent,
                    "Accept": "application/json",
                    "Accept-Language": "en-US,en;q=0.9",
                },
            )
        except ProviderError as e:
            logger.warning("reverse_geocoding_failed", provider=self.name, error=str(e))
            return coordinate_label(latitude, longitude)

        address = data.get("address") if isinstance(data, Mapping) else None
        if not isinstance(address, Mapping):
            return coordinate_label(latitude, longitude)

        place = first_text(
            address.get("city"),
            address.get("town"),
            address.get("village"),
            address.get("county"),
        ) or "Unknown Location"
        state = first_text(address.get("state"))
        country = first_text(address.get("country"))

        label = place
        if state:
            label += f", {state}"
        if country and country != "United States":
            label += f", {country}"
        return label

    def transform(self, data: Mapping[str, Any], latitude: float, longitude: float) -> WeatherRecord:
        current = data["currentConditions"]
        condition = VISUAL_CROSSING_CONDITIONS.lookup(current.get("icon"))

        return WeatherRecord(
            temperature_celsius=round_nearest(current["temp"]),
            description=first_text(current.get("conditions")) or condition.description,
            location_label=first_text(data.get("resolvedAddress"))
            or coordinate_label(latitude, longitude),
            humidity_percent=round_nearest(current["humidity"]),
            # unitGroup=metric reports km/h
            wind_speed_kmh=round_nearest(current.get("windspeed") or 0),
            icon_code=condition.icon,
            provider_name=self.name,
        )
