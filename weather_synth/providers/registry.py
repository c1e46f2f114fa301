"""Fixed registry of weather provider adapters."""

from collections.abc import Mapping
from types import MappingProxyType

import httpx

from weather_synth.core.config import Settings
from weather_synth.core.errors import UnknownProvider
from weather_synth.models.weather import ProviderAvailability
from weather_synth.providers.base import WeatherProvider
from weather_synth.providers.open_meteo import OpenMeteoProvider
from weather_synth.providers.openweathermap import (
    OpenWeatherMapOneCallProvider,
    OpenWeatherMapProvider,
)
from weather_synth.providers.tomorrow_io import TomorrowIOProvider
from weather_synth.providers.visual_crossing import VisualCrossingProvider
from weather_synth.providers.weatherapi import WeatherAPIProvider


class ProviderRegistry:
    """Name -> adapter mapping, frozen at construction."""

    def __init__(self, providers: Mapping[str, WeatherProvider]):
        self._providers = MappingProxyType(dict(providers))

    @property
    def names(self) -> list[str]:
        return list(self._providers)

    def get(self, name: str) -> WeatherProvider:
        """Return the adapter registered as ``name``.

        Raises:
            UnknownProvider: If no adapter is registered under that name
        """
        try:
            return self._providers[name]
        except KeyError:
            raise UnknownProvider(name, self.names) from None

    def is_available(self, name: str) -> bool:
        provider = self._providers.get(name)
        return provider is not None and provider.is_available()

    def get_available(self) -> set[str]:
        return {name for name in self._providers if self.is_available(name)}

    def describe_all(self) -> list[ProviderAvailability]:
        return [
            ProviderAvailability(
                name=name,
                requires_credential=provider.requires_credential,
                is_available=provider.is_available(),
            )
            for name, provider in self._providers.items()
        ]


def build_registry(client: httpx.AsyncClient, config: Settings) -> ProviderRegistry:
    """Create every adapter over one shared HTTP client.

    Credentials are looked up on ``config`` at call time, never captured.
    """
    providers: list[WeatherProvider] = [
        OpenWeatherMapProvider(client, lambda: config.openweather_api_key),
        OpenWeatherMapOneCallProvider(client, lambda: config.openweather_api_key),
        TomorrowIOProvider(client, lambda: config.tomorrow_api_key),
        WeatherAPIProvider(client, lambda: config.weatherapi_api_key),
        VisualCrossingProvider(client, lambda: config.visual_crossing_api_key),
        OpenMeteoProvider(client),
    ]
    return ProviderRegistry({provider.name: provider for provider in providers})
