"""Digital twin telemetry simulator for a PV plant.

Turns one ambient weather sample into one telemetry snapshot covering every
inverter, transformer and panel, while carrying state between calls:

  * the daily energy counter, integrated as P × Δt and reset at local
    midnight (the site offset is remembered across samples that lack one);
  * active equipment faults (keyed by equipment id), plant-wide alerts
    (keyed by title) and panel faults (keyed by panel index), at most one
    entry per key;
  * a queue of newly raised alerts drained by :meth:`get_new_alerts`.

Auto-clear is lazy: each active entry records when it expires and expired
entries are swept at the top of every cycle.  Clearing early therefore
leaves nothing behind to fire later.

One instance simulates one plant and is not thread-safe; callers serialize
access.
"""

from __future__ import annotations

import dataclasses
import logging
import random
import re
from datetime import date, datetime
from typing import Callable, Optional

from api.simulators.faults import FaultSimulator
from api.simulators.irradiance import (
    cell_temperature,
    clear_sky_ghi,
    cloud_attenuated_ghi,
    expected_power_kw,
)
from lib.constants import (
    INVERTER_DC_AC_RATIO,
    INVERTER_OVERTEMP_CODE,
    MPPT_NOMINAL_VOLTAGE,
    PERFORMANCE_ALERT_THRESHOLD,
    STATION_CONSUMPTION_FACTOR,
    TRANSFORMER_BASE_TEMP,
    TRANSFORMER_FLEET_RATING,
    TRANSFORMER_NEUTRAL_TAP,
    TRANSFORMER_OIL_TEMP_CODE,
    TRANSFORMER_WINDING_TEMP_CODE,
)
from lib.time_util import ensure_utc, hours_between, local_date, longitude_offset_seconds, ms_to_timedelta, utc_now
from lib.types import (
    ActiveFault,
    ActivePanelFault,
    DigitalTwinAlert,
    EquipmentStatus,
    InjectableCategory,
    InverterTelemetry,
    PanelFault,
    PanelFramePerformance,
    SimulationConfig,
    SystemMetrics,
    TelemetrySnapshot,
    TransformerTelemetry,
    WeatherSample,
)

log = logging.getLogger(__name__)

_PANEL_ID_RE = re.compile(r"^panel-(\d+)$")


def inverter_id(index: int) -> str:
    return f"inv-{index + 1}"


def transformer_id(index: int) -> str:
    return f"xfr-{index + 1}"


class DigitalTwinSimulator:
    """Stateful telemetry generator for a single plant.

    Args:
        config:          Plant description.  Owned by this instance.
        rng:             Random source for jitter and fault draws.  Pass a
                         seeded ``random.Random`` to replay a run exactly.
        clock:           Returns the current time.  Naive values are
                         treated as UTC.
        fault_simulator: Fault generator.  Defaults to one sharing *rng*
                         and *clock*.
    """

    def __init__(
        self,
        config: SimulationConfig,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
        fault_simulator: FaultSimulator | None = None,
    ) -> None:
        self.config = dataclasses.replace(config)
        self.rng = rng or random.Random()
        self.clock = clock
        self.faults = fault_simulator or FaultSimulator(rng=self.rng, clock=clock)

        self.energy_accumulator_kwh: float = 0.0
        self.last_sample_time: Optional[datetime] = None
        self.day_start: Optional[date] = None
        self.utc_offset_seconds: Optional[int] = None

        self.active_faults: dict[str, ActiveFault] = {}
        self.active_system_alerts: dict[str, ActiveFault] = {}
        self.active_panel_faults: dict[int, ActivePanelFault] = {}
        self._pending_alerts: list[DigitalTwinAlert] = []

    # ------------------------------------------------------------------
    # Alert queue
    # ------------------------------------------------------------------

    def get_new_alerts(self) -> list[DigitalTwinAlert]:
        """Return and clear the alerts raised since the previous call."""
        alerts, self._pending_alerts = self._pending_alerts, []
        return alerts

    # ------------------------------------------------------------------
    # Fault lifecycle
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    def _expiry(self, alert: DigitalTwinAlert, now: datetime) -> Optional[datetime]:
        if alert.auto_clear_ms and alert.auto_clear_ms > 0:
            return now + ms_to_timedelta(alert.auto_clear_ms)
        return None

    def _register_alert(self, alert: DigitalTwinAlert, now: datetime) -> bool:
        """Activate an equipment or system alert and queue it.

        Returns ``False`` (and does nothing) when the key is already active.
        """
        if alert.equipment_id is not None:
            if alert.equipment_id in self.active_faults:
                return False
            self.active_faults[alert.equipment_id] = ActiveFault(alert, self._expiry(alert, now))
        else:
            if alert.title in self.active_system_alerts:
                return False
            self.active_system_alerts[alert.title] = ActiveFault(alert, self._expiry(alert, now))

        self._pending_alerts.append(alert)
        log.debug("Raised %s %s on %s", alert.severity, alert.title, alert.equipment_id or "plant")
        return True

    def _register_panel_fault(self, fault: PanelFault, alert: DigitalTwinAlert, now: datetime) -> bool:
        if fault.panel_index in self.active_panel_faults:
            return False
        if len(self.active_panel_faults) >= self.config.max_concurrent_panel_faults:
            return False

        self.active_panel_faults[fault.panel_index] = ActivePanelFault(fault, alert, self._expiry(alert, now))
        self._pending_alerts.append(alert)
        log.debug("Raised %s on panel %d", alert.title, fault.panel_index)
        return True

    def expire_faults(self, now: datetime | None = None) -> None:
        """Drop every active entry whose auto-clear time has passed."""
        now = ensure_utc(now) if now is not None else self._now()

        for registry in (self.active_faults, self.active_system_alerts, self.active_panel_faults):
            expired = [key for key, entry in registry.items() if entry.expires_at is not None and entry.expires_at <= now]
            for key in expired:
                del registry[key]
                log.debug("Auto-cleared %s", key)

    def clear_fault(self, equipment_id: str) -> None:
        self.active_faults.pop(equipment_id, None)

    def clear_system_alert(self, title: str) -> None:
        self.active_system_alerts.pop(title, None)

    def clear_panel_fault(self, panel_index: int) -> None:
        self.active_panel_faults.pop(panel_index, None)

    def clear_panel_fault_by_equipment_id(self, equipment_id: str) -> None:
        """Clear a panel fault addressed as ``panel-N``; other ids are ignored."""
        match = _PANEL_ID_RE.match(equipment_id)
        if match:
            self.clear_panel_fault(int(match.group(1)))

    def has_active_fault(self, equipment_id: str) -> bool:
        return equipment_id in self.active_faults

    def has_active_panel_fault(self, panel_index: int) -> bool:
        return panel_index in self.active_panel_faults

    def active_fault_ids(self) -> list[str]:
        return list(self.active_faults)

    def active_system_alert_titles(self) -> list[str]:
        return list(self.active_system_alerts)

    def active_panel_fault_indices(self) -> list[int]:
        return sorted(self.active_panel_faults)

    # ------------------------------------------------------------------
    # Energy accounting
    # ------------------------------------------------------------------

    @property
    def energy_today_kwh(self) -> float:
        return self.energy_accumulator_kwh

    def _site_offset(self, utc_offset_seconds: Optional[int]) -> int:
        """UTC offset for the local day, independent of where the sample came from.

        Samples without an offset reuse the last one seen, or the nominal
        offset of the plant's longitude before any sample carried one.
        """
        if utc_offset_seconds is not None:
            self.utc_offset_seconds = utc_offset_seconds
        elif self.utc_offset_seconds is None:
            self.utc_offset_seconds = longitude_offset_seconds(self.config.longitude)
        return self.utc_offset_seconds

    def _check_day_rollover(self, now: datetime, utc_offset_seconds: Optional[int]) -> None:
        today = local_date(now, self._site_offset(utc_offset_seconds))
        if self.day_start is None:
            self.day_start = today
        elif today > self.day_start:
            log.info(
                "Day rollover for %s: %s -> %s, resetting %.3f kWh",
                self.config.design_id,
                self.day_start,
                today,
                self.energy_accumulator_kwh,
            )
            self.day_start = today
            self.energy_accumulator_kwh = 0.0

    def _accumulate_energy(self, actual_power_kw: float, now: datetime) -> None:
        if self.last_sample_time is not None and actual_power_kw > 0:
            elapsed = hours_between(self.last_sample_time, now)
            if elapsed > 0:
                self.energy_accumulator_kwh += actual_power_kw * elapsed
        self.last_sample_time = now

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _resolve_irradiance(self, weather: WeatherSample, now: datetime) -> float:
        # The live feed sometimes omits irradiance; model it from cloud cover.
        if weather.irradiance == 0 and weather.is_day:
            clear_sky = clear_sky_ghi(self.config.latitude, self.config.longitude, now)
            return cloud_attenuated_ghi(clear_sky, weather.cloud_cover)
        return weather.irradiance

    def generate_telemetry(self, weather: WeatherSample) -> TelemetrySnapshot:
        """Produce one snapshot and advance fault and energy state."""
        now = self._now()
        self.expire_faults(now)
        self._check_day_rollover(now, weather.utc_offset_seconds)

        irradiance = self._resolve_irradiance(weather, now)
        effective_weather = dataclasses.replace(weather, irradiance=irradiance)

        cell_temp = cell_temperature(weather.temperature, irradiance)
        system_losses = self.config.soiling_loss + self.config.mismatch_loss
        expected_power = expected_power_kw(self.config.capacity_kwp, irradiance, cell_temp, system_losses)

        inverters = self._simulate_inverters(expected_power, effective_weather, now)
        actual_power = sum(inv.ac_power for inv in inverters)
        transformers = self._simulate_transformers(actual_power, now)
        panel_frames = self._simulate_panel_frames(effective_weather, cell_temp, now)

        self._accumulate_energy(actual_power, now)

        performance_ratio = actual_power / expected_power if expected_power > 0 else 1.0
        online = sum(1 for inv in inverters if inv.status == "online")
        availability = online / max(1, len(inverters)) * 100.0

        if weather.is_day and performance_ratio < PERFORMANCE_ALERT_THRESHOLD:
            perf_alert = self.faults.check_performance_threshold(performance_ratio)
            if perf_alert is not None:
                self._register_alert(perf_alert, now)

        return TelemetrySnapshot(
            timestamp=now.isoformat(),
            design_id=self.config.design_id,
            weather=effective_weather,
            system=SystemMetrics(
                power_output=actual_power,
                energy_today=self.energy_accumulator_kwh,
                expected_power=expected_power,
                performance_ratio=performance_ratio,
                availability=availability,
                grid_export=actual_power * STATION_CONSUMPTION_FACTOR,
            ),
            inverters=inverters,
            transformers=transformers,
            panel_frames=panel_frames,
        )

    # ------------------------------------------------------------------
    # Equipment
    # ------------------------------------------------------------------

    def _simulate_inverters(self, total_expected_kw: float, weather: WeatherSample, now: datetime) -> list[InverterTelemetry]:
        count = self.config.inverter_count
        power_per_inverter = total_expected_kw / max(1, count)
        inverters: list[InverterTelemetry] = []

        for i in range(count):
            equipment_id = inverter_id(i)

            if self.config.enable_random_faults and not self.has_active_fault(equipment_id):
                fault = self.faults.maybe_generate_fault("inverter", equipment_id, self.config.fault_probability)
                if fault is not None:
                    self._register_alert(fault, now)

            active = self.active_faults.get(equipment_id)
            status: EquipmentStatus = "fault" if active else "online"

            variation = 1.0 + (self.rng.random() - 0.5) * 0.1
            ac_power = 0.0 if active else power_per_inverter * variation
            dc_power = ac_power * INVERTER_DC_AC_RATIO if ac_power > 0 else 0.0

            if dc_power > 0:
                mppt_voltage = [
                    MPPT_NOMINAL_VOLTAGE + self.rng.random() * 50,
                    MPPT_NOMINAL_VOLTAGE - 10 + self.rng.random() * 50,
                ]
                mppt_current = [dc_power / 2 / v for v in mppt_voltage]
            else:
                mppt_voltage = [0.0, 0.0]
                mppt_current = [0.0, 0.0]

            if active and active.alert.title == INVERTER_OVERTEMP_CODE:
                temperature = 85.0 + self.rng.random() * 10
            else:
                temperature = weather.temperature + 15.0 + self.rng.random() * 10

            inverters.append(
                InverterTelemetry(
                    equipment_id=equipment_id,
                    name=f"INV-{i + 1:02d}",
                    status=status,
                    dc_power=dc_power,
                    ac_power=ac_power,
                    efficiency=(ac_power / dc_power) * 100 if dc_power > 0 else 0.0,
                    temperature=temperature,
                    mppt_voltage=mppt_voltage,
                    mppt_current=mppt_current,
                    fault_code=active.alert.title if active else None,
                    fault_message=active.alert.message if active else None,
                )
            )

        return inverters

    def _simulate_transformers(self, total_power_kw: float, now: datetime) -> list[TransformerTelemetry]:
        count = self.config.transformer_count
        power_per_transformer = total_power_kw / max(1, count)
        rated_capacity = self.config.capacity_kwp * TRANSFORMER_FLEET_RATING / max(1, count)
        transformers: list[TransformerTelemetry] = []

        for i in range(count):
            equipment_id = transformer_id(i)

            if self.config.enable_random_faults and not self.has_active_fault(equipment_id):
                # Transformers fault half as often as inverters.
                fault = self.faults.maybe_generate_fault("transformer", equipment_id, self.config.fault_probability * 0.5)
                if fault is not None:
                    self._register_alert(fault, now)

            active = self.active_faults.get(equipment_id)
            status: EquipmentStatus = "warning" if active else "online"
            code = active.alert.title if active else None

            load_percent = power_per_transformer / rated_capacity * 100 if rated_capacity > 0 else 0.0
            temp_rise = load_percent * 0.3

            if code == TRANSFORMER_WINDING_TEMP_CODE:
                temperature = 95.0 + self.rng.random() * 10
            else:
                temperature = TRANSFORMER_BASE_TEMP + temp_rise + self.rng.random() * 5

            if code == TRANSFORMER_OIL_TEMP_CODE:
                oil_temperature = 80.0 + self.rng.random() * 10
            else:
                oil_temperature = TRANSFORMER_BASE_TEMP - 5 + temp_rise * 0.8 + self.rng.random() * 3

            transformers.append(
                TransformerTelemetry(
                    equipment_id=equipment_id,
                    name=f"XFR-{i + 1:02d}",
                    status=status,
                    load_percent=min(100.0, load_percent + self.rng.random() * 2),
                    temperature=temperature,
                    oil_temperature=oil_temperature,
                    tap_position=TRANSFORMER_NEUTRAL_TAP,
                )
            )

        return transformers

    def _panel_fault_probability(self) -> float:
        # Scaled so the plant-wide rate stays roughly independent of panel count.
        return self.config.fault_probability * 0.3 / max(1, self.config.panel_count / 100)

    def _simulate_panel_frames(self, weather: WeatherSample, cell_temp: float, now: datetime) -> list[PanelFramePerformance]:
        max_faults = self.config.max_concurrent_panel_faults
        probability = self._panel_fault_probability() if self.config.enable_random_faults else 0.0
        panels: list[PanelFramePerformance] = []

        for i in range(self.config.panel_count):
            if probability > 0 and len(self.active_panel_faults) < max_faults and not self.has_active_panel_fault(i):
                draw = self.faults.maybe_generate_panel_fault(i, probability)
                if draw is not None:
                    self._register_panel_fault(draw.fault, draw.alert, now)

            variation = 0.95 + self.rng.random() * 0.1
            active = self.active_panel_faults.get(i)
            if active:
                variation *= active.fault.performance_impact

            if active and active.fault.fault_type == "hot_spot":
                temperature = cell_temp + 20 + self.rng.random() * 15
            else:
                temperature = cell_temp + (self.rng.random() - 0.5) * 3

            panels.append(
                PanelFramePerformance(
                    panel_index=i,
                    avg_irradiance=weather.irradiance * variation,
                    temperature=temperature,
                    performance_index=variation,
                    fault_type=active.fault.fault_type if active else None,
                )
            )

        return panels

    # ------------------------------------------------------------------
    # Manual injection
    # ------------------------------------------------------------------

    def inject_fault(self, category: InjectableCategory) -> DigitalTwinAlert | None:
        """Force a fault onto the first free unit of *category*.

        Panels are picked uniformly at random among those without a fault.
        Returns ``None`` when every unit of the category is already faulted.

        Raises:
            ValueError: for a category other than inverter, transformer or panel.
        """
        now = self._now()
        self.expire_faults(now)

        if category in ("inverter", "transformer"):
            count = self.config.inverter_count if category == "inverter" else self.config.transformer_count
            make_id = inverter_id if category == "inverter" else transformer_id
            for i in range(count):
                equipment_id = make_id(i)
                if self.has_active_fault(equipment_id):
                    continue
                alert = self.faults.generate_random_fault(category, equipment_id)
                if alert is not None and self._register_alert(alert, now):
                    log.info("Injected %s on %s", alert.title, equipment_id)
                    return alert
            return None

        if category == "panel":
            free = [i for i in range(self.config.panel_count) if not self.has_active_panel_fault(i)]
            if not free:
                return None
            panel_index = self.rng.choice(free)
            draw = self.faults.generate_panel_fault(panel_index)
            if not self._register_panel_fault(draw.fault, draw.alert, now):
                log.info("Panel fault cap of %d reached; nothing injected", self.config.max_concurrent_panel_faults)
                return None
            log.info("Injected %s on panel %d", draw.alert.title, panel_index)
            return draw.alert

        raise ValueError(f"Cannot inject faults for category {category!r}")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> SimulationConfig:
        return dataclasses.replace(self.config)

    def update_config(self, **changes) -> SimulationConfig:
        """Merge *changes* into the live config without touching any state.

        Raises:
            TypeError: for a field ``SimulationConfig`` does not have.
        """
        self.config = dataclasses.replace(self.config, **changes)
        return self.get_config()


def create_simulator(
    design_id: str,
    capacity_kwp: float,
    latitude: float,
    longitude: float,
    rng: random.Random | None = None,
    clock: Callable[[], datetime] = utc_now,
    **overrides,
) -> DigitalTwinSimulator:
    """Build a simulator, filling unspecified config fields with defaults."""
    config = SimulationConfig(
        design_id=design_id,
        capacity_kwp=capacity_kwp,
        latitude=latitude,
        longitude=longitude,
        **overrides,
    )
    return DigitalTwinSimulator(config, rng=rng, clock=clock)
