from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable, NamedTuple

import httpx

from api.clients.open_meteo import OpenMeteoClient, OpenMeteoError, parse_current_weather
from api.simulators.weather import FallbackWeatherModel
from lib.time_util import longitude_offset_seconds, utc_now
from lib.types import WeatherSample

log = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 5 * 60
MAX_CACHE_ENTRIES = 50


class _CacheEntry(NamedTuple):
    sample: WeatherSample
    stored_at: float


def cache_key(lat: float, lon: float) -> str:
    return f"{lat:.2f},{lon:.2f}"


class WeatherClient:
    """Current weather for a site, never failing.

    Live samples come from Open-Meteo and are cached per location (rounded
    to two decimals) for ``ttl_seconds``.  Any timeout, HTTP error or
    malformed payload is logged and answered from the deterministic
    fallback model instead; fallback samples are not cached.  Fallback
    samples carry the last UTC offset Open-Meteo reported for the location,
    or the nominal offset of its longitude, so local time stays consistent
    whichever path answered.
    """

    def __init__(
        self,
        open_meteo: OpenMeteoClient,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_entries: int = MAX_CACHE_ENTRIES,
        fallback: FallbackWeatherModel | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.open_meteo = open_meteo
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.fallback = fallback or FallbackWeatherModel()
        self._monotonic = monotonic
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._offsets: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _get_cached(self, key: str) -> WeatherSample | None:
        entry = self._cache.get(key)
        if entry is not None and self._monotonic() - entry.stored_at < self.ttl_seconds:
            return entry.sample
        return None

    def _set_cached(self, key: str, sample: WeatherSample) -> None:
        self._cache.pop(key, None)
        self._cache[key] = _CacheEntry(sample, self._monotonic())

        # Dicts keep insertion order, so the first key is the oldest.
        while len(self._cache) > self.max_entries:
            del self._cache[next(iter(self._cache))]

    def clear_cache(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    # Fallback
    # ------------------------------------------------------------------

    def _remember_offset(self, key: str, sample: WeatherSample) -> None:
        if sample.utc_offset_seconds is None:
            return
        self._offsets.pop(key, None)
        self._offsets[key] = sample.utc_offset_seconds
        while len(self._offsets) > self.max_entries:
            del self._offsets[next(iter(self._offsets))]

    def _fallback(self, key: str, lat: float, lon: float) -> WeatherSample:
        offset = self._offsets.get(key)
        if offset is None:
            offset = longitude_offset_seconds(lon)
        return self.fallback.sample(lat, self._clock(), offset)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch_current_weather(self, lat: float, lon: float) -> WeatherSample:
        key = cache_key(lat, lon)
        cached = self._get_cached(key)
        if cached is not None:
            return cached

        try:
            payload = self.open_meteo.get_current_weather(lat=lat, lon=lon)
            sample = parse_current_weather(payload)
        except httpx.TimeoutException:
            log.warning("Weather request for (%.4f, %.4f) timed out, using fallback", lat, lon)
            return self._fallback(key, lat, lon)
        except OpenMeteoError as exc:
            log.error("Open-Meteo error %s for (%.4f, %.4f): %s", exc.status_code, lat, lon, exc.message)
            return self._fallback(key, lat, lon)
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as exc:
            log.error("Weather fetch failed for (%.4f, %.4f): %s", lat, lon, exc)
            return self._fallback(key, lat, lon)

        self._set_cached(key, sample)
        self._remember_offset(key, sample)
        return sample

    def close(self) -> None:
        self.open_meteo.close()
