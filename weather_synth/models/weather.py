"""Pydantic models for the canonical weather record and API responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_ICON = "01d"
UNKNOWN_DESCRIPTION = "Unknown"
MOCK_PROVIDER = "mock"


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys for the web client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UVIndex(CamelModel):
    """UV index with its exposure band and advice."""

    value: float
    risk: str
    protection: list[str]


class AirQuality(CamelModel):
    """US EPA air quality index with pollutant concentrations."""

    index: float | None = None
    category: str
    pollutants: dict[str, float | None] = Field(default_factory=dict)


class WeatherRecord(CamelModel):
    """Canonical weather record produced by every provider."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    temperature_celsius: int = Field(..., description="Current temperature in Celsius, rounded")
    description: str = Field(..., description="Human readable condition")
    location_label: str = Field(..., description="Resolved place name or coordinate string")
    humidity_percent: int = Field(..., description="Relative humidity in percent")
    wind_speed_kmh: int = Field(..., description="Wind speed in km/h, rounded")
    icon_code: str = Field(..., description="Canonical icon code, e.g. 01d")
    provider_name: str = Field(..., description="Provider that produced this record")
    is_mock_data: bool = Field(default=False, description="True only for the demo record")

    # Only providers with hourly and alert data fill these
    has_rain: bool | None = Field(None, description="Rain or drizzle expected in the next 3 hours")
    has_alerts: bool | None = Field(None, description="Whether the upstream issued weather alerts")
    alerts: list[dict[str, Any]] | None = Field(None, description="Upstream weather alerts, as sent")
    uv_index: UVIndex | None = Field(None, description="Current UV index")
    air_quality: AirQuality | None = Field(None, description="Current air quality")


class WeatherResponse(WeatherRecord):
    """Weather record as returned by ``/api/weather``."""

    mock_data: bool = Field(default=False, description="Mirror of isMockData for the web client")
    cached: bool = Field(default=False, description="Whether data was served from cache")
    cache_age_seconds: int | None = Field(None, description="Age of the cached entry in seconds")


class ProviderAvailability(CamelModel):
    """Availability of a single provider, computed on demand."""

    name: str
    requires_credential: bool
    is_available: bool


class CacheEntryView(CamelModel):
    """Cache entry plus its derived freshness fields."""

    key: str
    record: WeatherRecord
    fetched_at: datetime
    age_seconds: int
    is_valid: bool
    expires_in_seconds: int


class CacheSnapshot(CamelModel):
    """Diagnostic view of the whole cache."""

    entries: list[CacheEntryView]
    total_entries: int
    valid_entries: int
    expired_entries: int
    ttl_seconds: int
    retrieved_at: datetime


class HealthResponse(CamelModel):
    """Health check response model."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    environment: str = Field(..., description="Deployment environment")
    uptime_seconds: float = Field(..., description="Seconds since the process started")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Additional error details")


def demo_record() -> WeatherRecord:
    """Synthetic record served when no configured provider answers."""
    return WeatherRecord(
        temperature_celsius=22,
        description="Sunny (Mock Data)",
        location_label="Demo City, XX",
        humidity_percent=65,
        wind_speed_kmh=12,
        icon_code=DEFAULT_ICON,
        provider_name=MOCK_PROVIDER,
        is_mock_data=True,
    )
