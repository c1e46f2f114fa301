"""In-memory TTL cache for normalized weather records."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from weather_synth.core.config import settings
from weather_synth.core.logging import get_logger
from weather_synth.models.weather import CacheEntryView, CacheSnapshot, WeatherRecord

logger = get_logger(__name__)

# 2 decimals is roughly 1.1 km: the same neighbourhood, distinct cities
KEY_PRECISION = 2


@dataclass(frozen=True)
class CacheEntry:
    """A record and the time it was fetched. Replaced, never mutated."""

    key: str
    record: WeatherRecord
    fetched_at: float  # monotonic clock reading, for age and TTL
    fetched_wall_time: float  # epoch seconds, for display only

    def age_seconds(self, now: float) -> float:
        return max(0.0, now - self.fetched_at)

    def is_valid(self, now: float, ttl: float) -> bool:
        return self.age_seconds(now) < ttl


def make_cache_key(latitude: float, longitude: float, precision: int = KEY_PRECISION) -> str:
    """Generate cache key for a coordinate pair.

    Args:
        latitude: Latitude
        longitude: Longitude
        precision: Decimal places kept before building the key

    Returns:
        Cache key such as ``"40.71,-74.01"``
    """
    # "+ 0.0" turns -0.0 into 0.0 so both sides of the equator share a key
    lat = round(latitude, precision) + 0.0
    lon = round(longitude, precision) + 0.0
    return f"{lat:.{precision}f},{lon:.{precision}f}"


class CacheService:
    """Thread-safe TTL cache keyed by rounded coordinates.

    Expired entries are never served as fresh; they stay in place until
    ``sweep`` removes them or a refresh replaces them.
    """

    def __init__(
        self,
        ttl: int | None = None,
        precision: int = KEY_PRECISION,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        """Initialize cache service.

        Ages are measured on ``clock``, which must never go backwards.
        ``wall_clock`` only timestamps entries for display.
        """
        self.ttl = settings.cache_ttl if ttl is None else ttl
        self.precision = precision
        self._clock = clock
        self._wall_clock = wall_clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def now(self) -> float:
        return self._clock()

    def make_key(self, latitude: float, longitude: float) -> str:
        return make_cache_key(latitude, longitude, self.precision)

    def get(self, key: str) -> CacheEntry | None:
        """Get the entry stored under ``key``, fresh or not."""
        with self._lock:
            return self._entries.get(key)

    def get_valid(self, key: str) -> CacheEntry | None:
        """Get the entry under ``key`` only while it is within the TTL."""
        entry = self.get(key)
        if entry is None:
            logger.info("cache_miss", key=key)
            return None
        if not entry.is_valid(self.now(), self.ttl):
            logger.info("cache_expired", key=key)
            return None
        logger.info("cache_hit", key=key)
        return entry

    def put(self, key: str, record: WeatherRecord) -> CacheEntry:
        """Store ``record`` under ``key``, replacing any previous entry."""
        entry = CacheEntry(
            key=key,
            record=record,
            fetched_at=self.now(),
            fetched_wall_time=self._wall_clock(),
        )
        with self._lock:
            self._entries[key] = entry
        logger.info("cache_set", key=key, ttl=self.ttl, provider=record.provider_name)
        return entry

    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self.now()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if not entry.is_valid(now, self.ttl)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("cache_swept", removed=len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def snapshot(self) -> CacheSnapshot:
        """Diagnostic view of every entry, newest first. Does not touch state."""
        now = self.now()
        wall_now = self._wall_clock()
        with self._lock:
            entries = sorted(self._entries.values(), key=lambda e: e.fetched_at, reverse=True)

        views = []
        for entry in entries:
            age = entry.age_seconds(now)
            valid = entry.is_valid(now, self.ttl)
            views.append(
                CacheEntryView(
                    key=entry.key,
                    record=entry.record,
                    fetched_at=datetime.fromtimestamp(entry.fetched_wall_time, tz=timezone.utc),
                    age_seconds=round(age),
                    is_valid=valid,
                    expires_in_seconds=max(0, round(self.ttl - age)) if valid else 0,
                )
            )

        valid_count = sum(1 for view in views if view.is_valid)
        return CacheSnapshot(
            entries=views,
            total_entries=len(views),
            valid_entries=valid_count,
            expired_entries=len(views) - valid_count,
            ttl_seconds=self.ttl,
            retrieved_at=datetime.fromtimestamp(wall_now, tz=timezone.utc),
        )
