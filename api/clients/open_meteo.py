"""Client for the Open-Meteo forecast API.

Docs: https://open-meteo.com/en/docs  (free, no API key)
"""

from typing import Optional

import httpx

from lib.types import WeatherSample

BASE_URL = "https://api.open-meteo.com"

CURRENT_FIELDS = (
    "temperature_2m",
    "cloud_cover",
    "wind_speed_10m",
    "relative_humidity_2m",
    "is_day",
    "direct_radiation",
    "diffuse_radiation",
)


class OpenMeteoError(Exception):
    """Raised when the Open-Meteo API returns an error response."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Open-Meteo API error {status_code}: {message}")


def parse_current_weather(payload: dict) -> WeatherSample:
    """Map a ``/v1/forecast`` response to a :class:`WeatherSample`.

    Irradiance is direct + diffuse radiation, i.e. GHI.

    Raises:
        KeyError / IndexError / TypeError / ValueError: on a malformed payload.
    """
    current = payload["current"]
    daily = payload["daily"]
    offset: Optional[int] = payload.get("utc_offset_seconds")

    return WeatherSample(
        temperature=float(current["temperature_2m"]),
        cloud_cover=float(current["cloud_cover"]),
        irradiance=float(current["direct_radiation"]) + float(current["diffuse_radiation"]),
        wind_speed=float(current["wind_speed_10m"]),
        humidity=float(current["relative_humidity_2m"]),
        is_day=current["is_day"] == 1,
        sunrise=daily["sunrise"][0],
        sunset=daily["sunset"][0],
        utc_offset_seconds=int(offset) if offset is not None else None,
    )


class OpenMeteoClient:
    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, path: str, **params) -> dict:
        """Perform a GET request and return the parsed JSON body.

        Raises:
            OpenMeteoError: on any non-2xx HTTP status.
        """
        response = self._client.get(path, params={k: v for k, v in params.items() if v is not None})
        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = None
            detail = body.get("reason", response.text) if isinstance(body, dict) else response.text
            raise OpenMeteoError(response.status_code, detail)
        return response.json()

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._client.close()

    def __enter__(self) -> "OpenMeteoClient":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Current weather
    # ------------------------------------------------------------------

    def get_current_weather(self, lat: float, lon: float) -> dict:
        return self._get(
            "/v1/forecast",
            latitude=lat,
            longitude=lon,
            current=",".join(CURRENT_FIELDS),
            daily="sunrise,sunset",
            timezone="auto",
        )
