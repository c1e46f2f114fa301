"""Weather service façade: cache, single-flight and provider fallback."""

import math
from typing import Any

import httpx

from weather_synth.core.config import Settings, settings
from weather_synth.core.errors import InvalidCoordinates
from weather_synth.core.logging import get_logger
from weather_synth.models.weather import CacheSnapshot, WeatherRecord, WeatherResponse
from weather_synth.providers.registry import ProviderRegistry, build_registry
from weather_synth.services.cache import CacheService
from weather_synth.services.fallback import FallbackOrchestrator, resolve_provider_chain
from weather_synth.services.single_flight import SingleFlight

logger = get_logger(__name__)


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Reject non-finite or out of range coordinates.

    Raises:
        InvalidCoordinates: If either value is unusable
    """
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise InvalidCoordinates("Latitude and longitude must be finite numbers")
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise InvalidCoordinates("Invalid latitude or longitude values")


def parse_coordinates(lat: Any, lon: Any) -> tuple[float, float]:
    """Convert raw query values into a validated (latitude, longitude) pair.

    Raises:
        InvalidCoordinates: If a value is missing, not numeric or out of range
    """
    if lat is None or lon is None or not str(lat).strip() or not str(lon).strip():
        raise InvalidCoordinates("Latitude and longitude are required")

    try:
        latitude = float(lat)
        longitude = float(lon)
    except (TypeError, ValueError):
        raise InvalidCoordinates("Latitude and longitude must be valid numbers") from None

    validate_coordinates(latitude, longitude)
    return latitude, longitude


def _response(record: WeatherRecord, *, cached: bool, cache_age_seconds: int | None = None) -> WeatherResponse:
    return WeatherResponse(
        **record.model_dump(),
        mock_data=record.is_mock_data,
        cached=cached,
        cache_age_seconds=cache_age_seconds,
    )


class WeatherService:
    """Single entry point for weather retrieval.

    Valid cache entries are served without touching providers. On a miss,
    concurrent requests for the same cache key share one upstream
    resolution, whose result is written through to the cache.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        orchestrator: FallbackOrchestrator,
        cache: CacheService | None = None,
        client: httpx.AsyncClient | None = None,
        config_source: str = "Default",
    ):
        self.registry = registry
        self.orchestrator = orchestrator
        self.cache = cache if cache is not None else CacheService()
        self.client = client
        self.config_source = config_source
        self._flights = SingleFlight()

    async def close(self) -> None:
        """Close HTTP client."""
        if self.client is not None:
            await self.client.aclose()

    async def get_weather(self, latitude: float, longitude: float) -> WeatherResponse:
        """Get weather data for coordinates with caching.

        Args:
            latitude: Latitude in [-90, 90]
            longitude: Longitude in [-180, 180]

        Returns:
            Weather data, flagged as cached when served from the cache

        Raises:
            InvalidCoordinates: If the coordinates are out of range
            AllProvidersExhausted: If no provider answered and demo data is disabled
        """
        validate_coordinates(latitude, longitude)
        logger.info("weather_request", latitude=latitude, longitude=longitude)

        cache_key = self.cache.make_key(latitude, longitude)
        entry = self.cache.get_valid(cache_key)
        if entry is not None:
            logger.info("weather_cache_hit", key=cache_key, provider=entry.record.provider_name)
            age = entry.age_seconds(self.cache.now())
            return _response(entry.record, cached=True, cache_age_seconds=round(age))

        logger.info(
            "weather_cache_miss",
            key=cache_key,
            coalesced=self._flights.in_flight(cache_key),
        )
        return await self._flights.do(
            cache_key, lambda: self._refresh(cache_key, latitude, longitude)
        )

    async def _refresh(self, cache_key: str, latitude: float, longitude: float) -> WeatherResponse:
        record = await self.orchestrator.resolve(latitude, longitude)

        if record.is_mock_data:
            logger.info("weather_demo_data_not_cached", key=cache_key)
        else:
            self.cache.put(cache_key, record)

        logger.info(
            "weather_fetched",
            key=cache_key,
            provider=record.provider_name,
            temperature=record.temperature_celsius,
        )
        return _response(record, cached=False)

    async def probe_provider(self, name: str, latitude: float, longitude: float) -> WeatherRecord:
        """Call one named provider directly, bypassing cache and fallback."""
        validate_coordinates(latitude, longitude)
        logger.info("provider_probe", provider=name, latitude=latitude, longitude=longitude)
        return await self.orchestrator.attempt(name, latitude, longitude)

    def cache_snapshot(self) -> CacheSnapshot:
        return self.cache.snapshot()

    def provider_status(self) -> dict[str, Any]:
        """Provider availability, chain and cache counters, without any credential values."""
        providers = self.registry.describe_all()
        has_key = any(p.requires_credential and p.is_available for p in providers)
        snapshot = self.cache.snapshot()
        primary, fallback = self.orchestrator.chain

        return {
            "apiKey": {
                "hasKey": has_key,
                "status": "Configured" if has_key else "Missing (Mock mode)",
            },
            "weatherProviders": {
                "available": sorted(p.name for p in providers if p.is_available),
                "all": [p.name for p in providers],
                "status": {
                    p.name: {
                        "available": p.is_available,
                        "requiresApiKey": p.requires_credential,
                        "status": "Ready" if p.is_available else "Missing API Key",
                    }
                    for p in providers
                },
                "currentConfig": {"primary": primary, "fallback": fallback},
                "configSource": self.config_source,
                "demoFallbackEnabled": self.orchestrator.demo_fallback,
            },
            "cache": {
                "ttlSeconds": snapshot.ttl_seconds,
                "stats": {
                    "totalEntries": snapshot.total_entries,
                    "validEntries": snapshot.valid_entries,
                    "expiredEntries": snapshot.expired_entries,
                },
            },
        }


def build_weather_service(config: Settings = settings) -> WeatherService:
    """Wire the HTTP client, registry, orchestrator and cache from settings.

    Raises:
        UnknownProvider: If the configured provider chain names an unknown provider
    """
    client = httpx.AsyncClient(
        timeout=config.request_timeout,
        limits=httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0,
        ),
    )
    registry = build_registry(client, config)
    chain = resolve_provider_chain(config.weather_provider_config, config)
    orchestrator = FallbackOrchestrator(
        registry,
        chain.primary,
        chain.fallback,
        demo_fallback=config.demo_fallback_enabled,
        attempt_timeout=config.provider_attempt_timeout,
    )
    return WeatherService(
        registry=registry,
        orchestrator=orchestrator,
        cache=CacheService(ttl=config.cache_ttl),
        client=client,
        config_source="Environment Variable" if config.weather_provider_config else "Default",
    )
