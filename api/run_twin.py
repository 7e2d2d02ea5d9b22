"""Run the digital twin for a few cycles and print each snapshot as JSON.

Usage
-----
    python -m api.run_twin --lat 40.0 --lon -105.0 --capacity 1000
    python -m api.run_twin --lat 40.0 --lon -105.0 --capacity 1000 \\
        --cycles 12 --interval 5 --offline --seed 7
"""

from __future__ import annotations

import dataclasses
import json
import logging
import random
import sys
import time

from api.clients.open_meteo import OpenMeteoClient
from api.clients.weather import WeatherClient
from api.config import settings
from api.simulators.digital_twin import create_simulator
from api.simulators.weather import FallbackWeatherModel
from lib.time_util import longitude_offset_seconds

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stderr,
)
log = logging.getLogger("api.run_twin")


def run(
    lat: float,
    lon: float,
    capacity_kwp: float,
    cycles: int = 1,
    interval_seconds: float = 0.0,
    offline: bool = False,
    seed: int | None = None,
    **overrides,
) -> None:
    simulator = create_simulator(
        design_id=overrides.pop("design_id", "cli"),
        capacity_kwp=capacity_kwp,
        latitude=lat,
        longitude=lon,
        rng=random.Random(seed),
        **overrides,
    )
    fallback = FallbackWeatherModel()
    offline_offset = longitude_offset_seconds(lon)
    weather_client = None if offline else WeatherClient(
        OpenMeteoClient(base_url=settings.OPEN_METEO_BASE_URL, timeout=settings.WEATHER_TIMEOUT_SECONDS),
        ttl_seconds=settings.WEATHER_CACHE_TTL_SECONDS,
    )

    try:
        for cycle in range(cycles):
            if weather_client is None:
                weather = fallback.sample(lat, utc_offset_seconds=offline_offset)
            else:
                weather = weather_client.fetch_current_weather(lat, lon)
            snapshot = simulator.generate_telemetry(weather)

            for alert in simulator.get_new_alerts():
                log.warning("[%s] %s on %s: %s", alert.severity, alert.title, alert.equipment_id or "plant", alert.message)

            print(json.dumps(dataclasses.asdict(snapshot)))
            log.info(
                "Cycle %d/%d: %.1f kW of %.1f kW expected, %.3f kWh today",
                cycle + 1,
                cycles,
                snapshot.system.power_output,
                snapshot.system.expected_power,
                snapshot.system.energy_today,
            )

            if interval_seconds > 0 and cycle < cycles - 1:
                time.sleep(interval_seconds)
    finally:
        if weather_client is not None:
            weather_client.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Generate digital twin telemetry snapshots for one PV plant."
    )
    parser.add_argument("--lat", type=float, required=True, help="Site latitude")
    parser.add_argument("--lon", type=float, required=True, help="Site longitude")
    parser.add_argument("--capacity", type=float, required=True, help="DC capacity (kWp)")
    parser.add_argument("--design-id", default="cli")
    parser.add_argument("--inverters", type=int, default=1)
    parser.add_argument("--transformers", type=int, default=1)
    parser.add_argument("--panels", type=int, default=100)
    parser.add_argument("--fault-probability", type=float, default=0.01)
    parser.add_argument("--no-faults", action="store_true", help="Disable random faults")
    parser.add_argument("--cycles", type=int, default=1)
    parser.add_argument("--interval", type=float, default=0.0, help="Seconds between cycles")
    parser.add_argument("--offline", action="store_true", help="Use the fallback weather model only")
    parser.add_argument("--seed", type=int, default=settings.SIMULATION_SEED)
    args = parser.parse_args()

    if args.capacity <= 0:
        print(f"Invalid capacity: {args.capacity!r}. Expected a positive kWp value.", file=sys.stderr)
        sys.exit(1)

    run(
        lat=args.lat,
        lon=args.lon,
        capacity_kwp=args.capacity,
        cycles=args.cycles,
        interval_seconds=args.interval,
        offline=args.offline,
        seed=args.seed,
        design_id=args.design_id,
        inverter_count=args.inverters,
        transformer_count=args.transformers,
        panel_count=args.panels,
        fault_probability=args.fault_probability,
        enable_random_faults=not args.no_faults,
    )
