"""FastAPI application exposing the weather aggregation service."""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import Counter, Histogram, generate_latest
from slowapi.errors import RateLimitExceeded

from weather_synth.core.config import settings
from weather_synth.core.errors import (
    AllProvidersExhausted,
    InvalidCoordinates,
    ProviderError,
    UnknownProvider,
    UpstreamUnavailable,
)
from weather_synth.core.logging import configure_logging, get_logger
from weather_synth.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from weather_synth.models.weather import (
    CacheSnapshot,
    ErrorResponse,
    HealthResponse,
    WeatherResponse,
)
from weather_synth.services.cache_warmer import sweep_expired_entries, warm_cache
from weather_synth.services.weather import (
    WeatherService,
    build_weather_service,
    parse_coordinates,
)

# Configure logging
configure_logging()
logger = get_logger(__name__)

STARTED_AT = time.monotonic()

# Prometheus metrics
REQUEST_COUNT = Counter(
    "weather_synth_requests_total",
    "Total number of requests",
    ["method", "endpoint", "status"],
)
REQUEST_DURATION = Histogram(
    "weather_synth_request_duration_seconds",
    "Request duration in seconds",
    ["method", "endpoint"],
)
CACHE_HITS = Counter("weather_synth_cache_hits_total", "Total number of cache hits")
CACHE_MISSES = Counter("weather_synth_cache_misses_total", "Total number of cache misses")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    # Startup
    logger.info("application_starting", version=settings.app_version)

    try:
        service = build_weather_service(settings)
    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise

    app.state.weather_service = service
    primary, fallback = service.orchestrator.chain
    logger.info(
        "application_started",
        primary_provider=primary,
        fallback_provider=fallback,
        available_providers=sorted(service.registry.get_available()),
        cache_ttl=service.cache.ttl,
    )

    background = [
        asyncio.create_task(sweep_expired_entries(service, settings.cache_sweep_interval))
    ]

    # Warm cache in background (non-blocking) after a small delay
    if settings.cache_warming_enabled:
        logger.info("cache_warming_task_scheduled")

        async def delayed_cache_warming():
            try:
                await asyncio.sleep(2)  # Wait 2 seconds for everything to be ready
                logger.info("cache_warming_task_starting")
                result = await warm_cache(service)
                logger.info("cache_warming_task_completed", result=result)
            except Exception as e:
                logger.error("cache_warming_task_failed", error=str(e), exc_info=True)

        background.append(asyncio.create_task(delayed_cache_warming()))
    else:
        logger.info("cache_warming_disabled_in_config")

    yield

    # Shutdown
    logger.info("application_shutting_down")
    for task in background:
        task.cancel()
    await asyncio.gather(*background, return_exceptions=True)
    await service.close()
    logger.info("application_stopped")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Weather aggregation API with provider fallback, caching and monitoring",
    lifespan=lifespan,
)

# Add rate limiter state and exception handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def get_weather_service(request: Request) -> WeatherService:
    """Weather service built during startup."""
    return request.app.state.weather_service


def error_response(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    """Add correlation ID to each request for tracing."""
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

    # Bind correlation ID to structlog context
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id

    return response


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Track request metrics."""
    method = request.method
    path = request.url.path

    with REQUEST_DURATION.labels(method=method, endpoint=path).time():
        response = await call_next(request)

    REQUEST_COUNT.labels(method=method, endpoint=path, status=response.status_code).inc()

    return response


@app.get(
    "/api/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["Health"],
)
async def health_check():
    """Liveness endpoint reporting version, environment and uptime."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        uptime_seconds=round(time.monotonic() - STARTED_AT, 3),
    )


@app.get(
    "/api/weather",
    response_model=WeatherResponse,
    summary="Get weather for coordinates",
    description="""Fetch current weather for a latitude/longitude pair.

    The configured primary provider is tried first, then the fallback. Results
    are cached for one hour per ~1 km cell. When no provider answers, demo data
    flagged with `mockData: true` is returned unless demo data is disabled.
    """,
    response_description="Canonical weather record with temperature in Celsius, wind speed in km/h",
    tags=["Weather"],
    responses={
        400: {"model": ErrorResponse, "description": "Missing or invalid coordinates"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "No provider credentials configured"},
        502: {"model": ErrorResponse, "description": "All configured providers failed"},
    },
)
@limiter.limit(settings.rate_limit)
async def get_weather(
    request: Request,
    lat: str | None = None,
    lon: str | None = None,
    service: WeatherService = Depends(get_weather_service),
):
    """Get weather data for a coordinate pair.

    Args:
        request: FastAPI request object (for rate limiting)
        lat: Latitude, -90 to 90
        lon: Longitude, -180 to 180

    Returns:
        Canonical weather record plus cache metadata
    """
    try:
        latitude, longitude = parse_coordinates(lat, lon)
    except InvalidCoordinates as e:
        logger.warning("weather_request_rejected", lat=lat, lon=lon, error=str(e))
        return error_response(400, "Invalid coordinates", str(e))

    try:
        weather = await service.get_weather(latitude, longitude)
    except AllProvidersExhausted as e:
        logger.error("weather_request_failed", latitude=latitude, longitude=longitude, error=str(e))
        if e.is_configuration_error:
            return error_response(500, "No weather provider configured", str(e))
        return error_response(502, "Weather providers unavailable", str(e))

    # Update cache metrics
    if weather.cached:
        CACHE_HITS.inc()
    else:
        CACHE_MISSES.inc()

    return weather


@app.get(
    "/api/weather/test",
    summary="Test a single provider",
    description="Calls one named provider directly, bypassing the cache and the fallback chain.",
    tags=["Weather"],
    responses={400: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def probe_weather_provider(
    request: Request,
    provider: str | None = None,
    lat: str | None = None,
    lon: str | None = None,
    service: WeatherService = Depends(get_weather_service),
):
    """Fetch from one provider and report its normalized record or its error."""
    if not provider or not provider.strip():
        return error_response(400, "Missing provider parameter", "Please specify a weather provider to test")

    try:
        latitude, longitude = parse_coordinates(lat, lon)
    except InvalidCoordinates as e:
        return error_response(400, "Invalid coordinates", str(e))

    coordinates = {"lat": latitude, "lon": longitude}
    started = time.perf_counter()

    try:
        record = await service.probe_provider(provider, latitude, longitude)
    except UnknownProvider as e:
        return error_response(400, "Invalid provider", str(e))
    except ProviderError as e:
        logger.warning("provider_probe_failed", provider=provider, error=str(e))
        return JSONResponse(
            status_code=503 if isinstance(e, UpstreamUnavailable) else 502,
            content={
                "provider": provider,
                "success": False,
                "error": str(e),
                "errorType": type(e).__name__,
                "testCoordinates": coordinates,
                "testTimestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    latency_ms = (time.perf_counter() - started) * 1000
    logger.info("provider_probe_succeeded", provider=provider, latency_ms=round(latency_ms, 1))

    return {
        **record.model_dump(by_alias=True),
        "success": True,
        "testProvider": provider,
        "testCoordinates": coordinates,
        "testTimestamp": datetime.now(timezone.utc).isoformat(),
        "upstreamLatencyMs": round(latency_ms, 1),
    }


@app.get(
    "/api/weather/cache",
    response_model=CacheSnapshot,
    summary="Inspect the weather cache",
    tags=["Diagnostics"],
)
async def weather_cache(service: WeatherService = Depends(get_weather_service)):
    """Every cached entry with its age, validity and time to expiry."""
    return service.cache_snapshot()


@app.get("/api/status", summary="Provider and cache status", tags=["Diagnostics"])
async def api_status(service: WeatherService = Depends(get_weather_service)):
    """Report provider availability and configuration without exposing credentials."""
    return {
        **service.provider_status(),
        "rateLimit": {"limit": settings.rate_limit, "enabled": limiter.enabled},
        "environment": settings.environment,
    }


@app.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics",
    description="Exposes application metrics in Prometheus format for monitoring and alerting",
    tags=["Monitoring"],
)
async def metrics():
    """Prometheus metrics endpoint.

    Returns metrics in Prometheus format including:
    - Request counts by endpoint and status code
    - Request duration histograms
    - Cache hit/miss counters
    - Provider attempts and upstream latency
    """
    return generate_latest()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error("unhandled_exception", error=str(exc), path=request.url.path)

    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "weather_synth.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
