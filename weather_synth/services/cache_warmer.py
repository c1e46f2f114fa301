"""Background cache maintenance: warming popular locations and sweeping expired entries."""

import asyncio
from collections.abc import Sequence

from prometheus_client import Counter, Histogram

from weather_synth.core.config import settings
from weather_synth.core.errors import WeatherServiceError
from weather_synth.core.logging import get_logger
from weather_synth.services.weather import WeatherService

logger = get_logger(__name__)

# Metrics
CACHE_WARMING_DURATION = Histogram(
    "weather_synth_cache_warming_duration_seconds",
    "Time taken to warm cache",
)
CACHE_WARMING_LOCATIONS = Counter(
    "weather_synth_cache_warming_locations_total",
    "Number of locations warmed in cache",
    ["status"],
)
CACHE_SWEPT_ENTRIES = Counter(
    "weather_synth_cache_swept_entries_total",
    "Expired cache entries removed by the periodic sweep",
)


async def warm_location(service: WeatherService, latitude: float, longitude: float) -> bool:
    """Warm cache for a single location.

    Args:
        service: Weather service whose cache is warmed
        latitude: Latitude
        longitude: Longitude

    Returns:
        True if a real provider record was cached, False otherwise
    """
    try:
        weather = await service.get_weather(latitude, longitude)
    except WeatherServiceError as e:
        logger.warning("cache_warming_location_failed", latitude=latitude, longitude=longitude, error=str(e))
        CACHE_WARMING_LOCATIONS.labels(status="failed").inc()
        return False

    if weather.is_mock_data:
        # demo data is never cached, so nothing was warmed
        logger.warning("cache_warming_location_demo_only", latitude=latitude, longitude=longitude)
        CACHE_WARMING_LOCATIONS.labels(status="demo").inc()
        return False

    logger.info(
        "cache_warming_location_success",
        latitude=latitude,
        longitude=longitude,
        provider=weather.provider_name,
    )
    CACHE_WARMING_LOCATIONS.labels(status="success").inc()
    return True


async def warm_cache(
    service: WeatherService,
    locations: Sequence[tuple[float, float]] | None = None,
) -> dict[str, int]:
    """Warm cache with weather data for popular locations.

    Args:
        service: Weather service whose cache is warmed
        locations: Optional (latitude, longitude) pairs. Uses settings.popular_locations if None.

    Returns:
        Dictionary with success and failure counts
    """
    if not settings.cache_warming_enabled:
        logger.info("cache_warming_disabled")
        return {"success": 0, "failed": 0}

    to_warm = list(settings.popular_locations if locations is None else locations)

    logger.info("cache_warming_started", locations_count=len(to_warm))

    with CACHE_WARMING_DURATION.time():
        results = await asyncio.gather(
            *(warm_location(service, lat, lon) for lat, lon in to_warm)
        )

    success_count = sum(1 for r in results if r is True)
    failed_count = len(results) - success_count

    logger.info(
        "cache_warming_completed",
        total=len(to_warm),
        success=success_count,
        failed=failed_count,
    )

    return {"success": success_count, "failed": failed_count}


async def sweep_expired_entries(service: WeatherService, interval: float) -> None:
    """Remove expired cache entries every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        removed = service.cache.sweep()
        CACHE_SWEPT_ENTRIES.inc(removed)
        logger.info("cache_sweep_completed", removed=removed, remaining=len(service.cache))
