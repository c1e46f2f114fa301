"""Primary/fallback provider selection."""

import asyncio
import json
from collections.abc import Mapping
from typing import Any, NamedTuple

from prometheus_client import Counter, Histogram

from weather_synth.core.config import Settings
from weather_synth.core.errors import (
    AllProvidersExhausted,
    ProviderError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from weather_synth.core.logging import get_logger
from weather_synth.models.weather import WeatherRecord, demo_record
from weather_synth.providers.registry import ProviderRegistry

logger = get_logger(__name__)

PROVIDER_ATTEMPTS = Counter(
    "weather_synth_provider_attempts_total",
    "Upstream provider attempts by outcome",
    ["provider", "role", "outcome"],
)
UPSTREAM_LATENCY = Histogram(
    "weather_synth_upstream_latency_seconds",
    "Upstream provider latency in seconds",
    ["provider"],
)


class ProviderChain(NamedTuple):
    primary: str
    fallback: str


def resolve_provider_chain(raw: str | Mapping[str, Any] | None, config: Settings) -> ProviderChain:
    """Turn the flag system's provider configuration into a chain.

    Accepts a JSON string or an already decoded mapping such as
    ``{"primary": "tomorrow-io", "fallback": "open-meteo"}``. Anything
    unusable yields the configured defaults.
    """
    default = ProviderChain(config.default_primary_provider, config.default_fallback_provider)
    if not raw:
        return default

    try:
        value = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError as e:
        logger.warning("provider_config_invalid", error=str(e))
        return default

    if isinstance(value, Mapping) and isinstance(value.get("primary"), str) and value["primary"]:
        fallback = value.get("fallback")
        if not isinstance(fallback, str) or not fallback:
            fallback = config.default_fallback_provider
        return ProviderChain(value["primary"], fallback)

    logger.warning("provider_config_invalid", error="missing primary provider")
    return default


class FallbackOrchestrator:
    """Try the primary provider, then the fallback, then serve demo data.

    Both provider names are validated on construction, so a misconfigured
    chain fails at startup with ``UnknownProvider``.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        primary: str,
        fallback: str,
        *,
        demo_fallback: bool = True,
        attempt_timeout: float | None = None,
    ):
        registry.get(primary)
        registry.get(fallback)
        self.registry = registry
        self.primary = primary
        self.fallback = fallback
        self.demo_fallback = demo_fallback
        self.attempt_timeout = attempt_timeout

    @property
    def chain(self) -> ProviderChain:
        return ProviderChain(self.primary, self.fallback)

    async def attempt(self, name: str, latitude: float, longitude: float) -> WeatherRecord:
        """Fetch from a single provider with no fallback.

        Raises:
            UnknownProvider: If ``name`` is not registered
            UpstreamUnavailable: If the provider has no credential configured
            ProviderError: If the provider call fails or times out
        """
        provider = self.registry.get(name)
        if not provider.is_available():
            raise UpstreamUnavailable(name)

        try:
            with UPSTREAM_LATENCY.labels(provider=name).time():
                record = await asyncio.wait_for(
                    provider.fetch(latitude, longitude), timeout=self.attempt_timeout
                )
        except asyncio.TimeoutError as e:
            raise UpstreamTimeout(name, self.attempt_timeout) from e

        return record.model_copy(update={"provider_name": name, "is_mock_data": False})

    async def resolve(self, latitude: float, longitude: float) -> WeatherRecord:
        """Get a record from the first provider in the chain that answers.

        Raises:
            AllProvidersExhausted: If both providers fail and demo data is disabled
        """
        failures: list[ProviderError] = []
        attempted: dict[str, ProviderError] = {}

        for role, name in (("primary", self.primary), ("fallback", self.fallback)):
            if name in attempted:
                # fallback is the same provider that already failed as primary
                failures.append(attempted[name])
                continue

            try:
                record = await self.attempt(name, latitude, longitude)
            except ProviderError as e:
                PROVIDER_ATTEMPTS.labels(provider=name, role=role, outcome=type(e).__name__).inc()
                logger.warning(
                    "provider_failed",
                    provider=name,
                    role=role,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                attempted[name] = e
                failures.append(e)
                continue

            PROVIDER_ATTEMPTS.labels(provider=name, role=role, outcome="success").inc()
            logger.info("provider_succeeded", provider=name, role=role)
            return record

        exhausted = AllProvidersExhausted(*failures)
        if self.demo_fallback:
            PROVIDER_ATTEMPTS.labels(provider="mock", role="demo", outcome="success").inc()
            logger.warning(
                "all_providers_failed_serving_demo_data",
                primary=self.primary,
                fallback=self.fallback,
                error=str(exhausted),
            )
            return demo_record()

        logger.error(
            "all_providers_failed",
            primary=self.primary,
            fallback=self.fallback,
            error=str(exhausted),
        )
        raise exhausted
