import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else None


class Settings:
    DEBUG: bool = os.getenv("DEBUG", "true").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    OPEN_METEO_BASE_URL: str = os.getenv("OPEN_METEO_BASE_URL", "https://api.open-meteo.com")
    WEATHER_TIMEOUT_SECONDS: float = float(os.getenv("WEATHER_TIMEOUT_SECONDS", "15"))
    WEATHER_CACHE_TTL_SECONDS: float = float(os.getenv("WEATHER_CACHE_TTL_SECONDS", "300"))
    UPDATE_INTERVAL_SECONDS: float = float(os.getenv("UPDATE_INTERVAL_SECONDS", "5"))
    SIMULATION_SEED: Optional[int] = _optional_int("SIMULATION_SEED")


settings = Settings()
