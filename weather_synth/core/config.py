"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Weather Synth API"
    app_version: str = "1.2.0"
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3001

    # Cache
    cache_ttl: int = 3600  # 1 hour
    cache_sweep_interval: int = 1800  # 30 minutes

    # Upstream APIs
    request_timeout: float = 10.0
    provider_attempt_timeout: float = 20.0  # covers a weather call plus reverse geocoding
    openweather_api_url: str = "https://api.openweathermap.org/data/2.5/weather"
    openweather_onecall_url: str = "https://api.openweathermap.org/data/3.0/onecall"
    openweather_geocoding_url: str = "https://api.openweathermap.org/geo/1.0/reverse"
    tomorrow_api_url: str = "https://api.tomorrow.io/v4/weather/realtime"
    weatherapi_api_url: str = "https://api.weatherapi.com/v1/current.json"
    visual_crossing_api_url: str = (
        "https://weather.visualcrossing.com/VisualCrossingWebServices/rest/services/timeline"
    )
    open_meteo_api_url: str = "https://api.open-meteo.com/v1/forecast"
    nominatim_api_url: str = "https://nominatim.openstreetmap.org/reverse"
    nominatim_user_agent: str = "WeatherSynth/1.2 (weather aggregation service)"

    # Provider credentials
    openweather_api_key: str | None = None
    tomorrow_api_key: str | None = None
    weatherapi_api_key: str | None = None
    visual_crossing_api_key: str | None = None

    # Provider selection, normally pushed by the feature flag system as JSON
    weather_provider_config: str | None = None
    default_primary_provider: str = "openweathermap"
    default_fallback_provider: str = "open-meteo"
    demo_fallback_enabled: bool = True

    # Rate limiting
    rate_limit: str = "30/minute"
    rate_limit_enabled: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Cache Warming
    cache_warming_enabled: bool = False
    popular_locations: list[tuple[float, float]] = [
        (40.7128, -74.0060),  # New York
        (51.5074, -0.1278),  # London
        (48.8566, 2.3522),  # Paris
        (35.6762, 139.6503),  # Tokyo
        (52.5200, 13.4050),  # Berlin
        (-33.8688, 151.2093),  # Sydney
    ]


settings = Settings()
