"""Deterministic fallback weather model.

Used whenever the live weather API is unreachable.  Conditions depend only
on the site latitude and the local hour, so two calls within the same hour
return the same sample.

    is_day      = 06:00 <= hour < 18:00
    temperature = 25 − 0.3·|lat| ± 5        (+5 by day, −5 by night)
    irradiance  = 800 · sin(π · (hour − 6) / 12)   by day, else 0
"""

from __future__ import annotations

import math
from datetime import datetime

from lib.time_util import at_hour, local_datetime, utc_now
from lib.types import WeatherSample


class FallbackWeatherModel:
    sunrise_hour: int = 6
    sunset_hour: int = 18
    peak_irradiance: float = 800.0
    cloud_cover: float = 20.0  # partly cloudy
    wind_speed: float = 3.0
    humidity: float = 50.0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _is_day(self, hour: int) -> bool:
        return self.sunrise_hour <= hour < self.sunset_hour

    def _temperature(self, latitude: float, is_day: bool) -> float:
        base = 25.0 - abs(latitude) * 0.3
        return base + (5.0 if is_day else -5.0)

    def _irradiance(self, hour: int) -> float:
        if not self._is_day(hour):
            return 0.0
        day_length = self.sunset_hour - self.sunrise_hour
        progress = (hour - self.sunrise_hour) / day_length
        return self.peak_irradiance * math.sin(progress * math.pi)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def sample(self, latitude: float, now: datetime | None = None, utc_offset_seconds: int | None = None) -> WeatherSample:
        local = local_datetime(now or utc_now(), utc_offset_seconds)
        hour = local.hour
        is_day = self._is_day(hour)

        return WeatherSample(
            temperature=self._temperature(latitude, is_day),
            cloud_cover=self.cloud_cover,
            irradiance=self._irradiance(hour),
            wind_speed=self.wind_speed,
            humidity=self.humidity,
            is_day=is_day,
            sunrise=at_hour(local.date(), self.sunrise_hour, local.tzinfo).isoformat(),
            sunset=at_hour(local.date(), self.sunset_hour, local.tzinfo).isoformat(),
            utc_offset_seconds=utc_offset_seconds,
        )


def fallback_weather(latitude: float, now: datetime | None = None, utc_offset_seconds: int | None = None) -> WeatherSample:
    return FallbackWeatherModel().sample(latitude, now, utc_offset_seconds)
