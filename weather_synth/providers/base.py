"""Shared building blocks for upstream weather provider adapters."""

import math
import re
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any, Hashable, NamedTuple, Protocol, runtime_checkable

import httpx

from weather_synth.core.errors import (
    UpstreamHttpError,
    UpstreamParseError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from weather_synth.core.logging import get_logger
from weather_synth.models.weather import DEFAULT_ICON, UNKNOWN_DESCRIPTION, WeatherRecord

logger = get_logger(__name__)

MS_TO_KMH = 3.6
MPH_TO_KMH = 1.609344

CANONICAL_ICON = re.compile(r"^\d{2}[dn]$")

CredentialSource = Callable[[], str | None]


@runtime_checkable
class WeatherProvider(Protocol):
    """Contract implemented by every upstream adapter."""

    name: str
    requires_credential: bool

    def is_available(self) -> bool: ...

    async def fetch(self, latitude: float, longitude: float) -> WeatherRecord: ...


class Condition(NamedTuple):
    """Canonical description and icon for one upstream condition code."""

    description: str
    icon: str


UNKNOWN_CONDITION = Condition(UNKNOWN_DESCRIPTION, DEFAULT_ICON)


class ConditionTable:
    """Immutable code -> Condition lookup that never fails on unknown codes."""

    def __init__(self, entries: Mapping[Hashable, Condition]):
        self._entries = MappingProxyType(dict(entries))

    def __contains__(self, code: object) -> bool:
        try:
            return code in self._entries
        except TypeError:
            return False

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, code: Any) -> Condition:
        try:
            return self._entries.get(code, UNKNOWN_CONDITION)
        except TypeError:
            # unhashable payload value
            return UNKNOWN_CONDITION


def round_nearest(value: Any) -> int:
    """Round to the nearest integer, halves towards positive infinity."""
    return math.floor(float(value) + 0.5)


def ms_to_kmh(value: Any) -> float:
    return float(value) * MS_TO_KMH


def mph_to_kmh(value: Any) -> float:
    return float(value) * MPH_TO_KMH


def coordinate_label(latitude: float, longitude: float) -> str:
    """Location label used when a place name cannot be resolved."""
    return f"{float(latitude):.4f}, {float(longitude):.4f}"


def first_text(*values: Any) -> str | None:
    """Return the first non-blank string among ``values``."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class HttpProvider:
    """Helper base for adapters that call a JSON HTTP API.

    Subclasses set ``name`` and ``requires_credential`` and implement
    ``fetch``. Credentials are read through ``credential`` on every call so
    availability always reflects the current configuration.
    """

    name: str = ""
    requires_credential: bool = True

    def __init__(self, client: httpx.AsyncClient, credential: CredentialSource | None = None):
        self.client = client
        self._credential = credential or (lambda: None)

    def api_key(self) -> str | None:
        value = self._credential()
        if value and value.strip():
            return value.strip()
        return None

    def is_available(self) -> bool:
        if not self.requires_credential:
            return True
        return self.api_key() is not None

    def _require_key(self) -> str:
        key = self.api_key()
        if key is None:
            raise UpstreamUnavailable(self.name)
        return key

    async def _get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[Any, int]:
        """GET ``url`` and return the decoded JSON body with its status code.

        Raises:
            UpstreamTimeout: If the request timed out
            UpstreamHttpError: On transport failure or a non-2xx status
            UpstreamParseError: If the body is not JSON
        """
        try:
            response = await self.client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("provider_timeout", provider=self.name, error=str(e))
            raise UpstreamTimeout(self.name) from e
        except httpx.HTTPError as e:
            logger.error("provider_request_failed", provider=self.name, error=str(e))
            raise UpstreamHttpError(self.name, None, f"{self.name} request failed: {e}") from e

        if not response.is_success:
            logger.error("provider_http_error", provider=self.name, status=response.status_code)
            raise UpstreamHttpError(self.name, response.status_code)

        try:
            return response.json(), response.status_code
        except ValueError as e:
            logger.error(
                "provider_parse_failed",
                provider=self.name,
                status=response.status_code,
                error="response body is not valid JSON",
            )
            raise UpstreamParseError(
                self.name, f"{self.name} returned a non-JSON body", response.status_code
            ) from e

    def _build(self, transform: Callable[[], WeatherRecord], status: int | None) -> WeatherRecord:
        """Run ``transform`` and turn shape mismatches into ``UpstreamParseError``."""
        try:
            return transform()
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            logger.error("provider_parse_failed", provider=self.name, status=status, error=repr(e))
            raise UpstreamParseError(
                self.name, f"Unexpected {self.name} response: {e!r}", status
            ) from e
