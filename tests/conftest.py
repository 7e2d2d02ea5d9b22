"""Shared fixtures: a controllable clock and canned weather samples."""

from datetime import datetime, timedelta, timezone

import pytest

from lib.types import WeatherSample


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_weather(
    irradiance: float = 1000.0,
    temperature: float = 25.0,
    cloud_cover: float = 0.0,
    is_day: bool = True,
    utc_offset_seconds: int | None = 0,
) -> WeatherSample:
    return WeatherSample(
        temperature=temperature,
        cloud_cover=cloud_cover,
        irradiance=irradiance,
        wind_speed=3.0,
        humidity=40.0,
        is_day=is_day,
        sunrise="2025-06-21T05:30:00",
        sunset="2025-06-21T20:30:00",
        utc_offset_seconds=utc_offset_seconds,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Solar noon in Boulder, CO on the June solstice (19:00 UTC)."""
    return FakeClock(datetime(2025, 6, 21, 19, 0, tzinfo=timezone.utc))


@pytest.fixture
def sunny() -> WeatherSample:
    return make_weather()


class StubWeatherClient:
    """Stands in for WeatherClient; optionally raises instead of answering."""

    def __init__(self, sample: WeatherSample | None = None, error: Exception | None = None) -> None:
        self.sample = sample or make_weather()
        self.error = error
        self.calls: list[tuple[float, float]] = []
        self.closed = False

    def fetch_current_weather(self, lat: float, lon: float) -> WeatherSample:
        self.calls.append((lat, lon))
        if self.error is not None:
            raise self.error
        return self.sample

    def close(self) -> None:
        self.closed = True
