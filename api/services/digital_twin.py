from __future__ import annotations

import logging
import random
import threading
from datetime import datetime
from typing import Callable, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from api.clients.weather import WeatherClient
from api.simulators.digital_twin import DigitalTwinSimulator
from lib.constants import MAX_ALERT_LOG, MAX_SNAPSHOT_HISTORY
from lib.time_util import utc_now
from lib.types import DigitalTwinAlert, InjectableCategory, SimulationConfig, TelemetrySnapshot

log = logging.getLogger(__name__)

_JOB_ID = "digital_twin_update"


class SimulationNotActiveError(Exception):
    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Simulation must be active to {action}")


class DigitalTwinService:
    """Runs one simulator on a schedule and keeps its alert log and history.

    The scheduler uses a single worker thread and ``max_instances=1`` so
    cycles never overlap; every public method takes ``_lock`` so API calls
    interleave with scheduled cycles but never run inside one.
    """

    def __init__(
        self,
        weather_client: WeatherClient,
        update_interval_seconds: float = 5.0,
        seed: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
        max_alerts: int = MAX_ALERT_LOG,
        max_history: int = MAX_SNAPSHOT_HISTORY,
    ) -> None:
        self.weather_client = weather_client
        self.update_interval_seconds = update_interval_seconds
        self.seed = seed
        self.clock = clock
        self.max_alerts = max_alerts
        self.max_history = max_history

        self.current_snapshot: Optional[TelemetrySnapshot] = None
        self.snapshot_history: list[TelemetrySnapshot] = []
        self.alerts: list[DigitalTwinAlert] = []
        self.error: Optional[str] = None

        self._simulator: Optional[DigitalTwinSimulator] = None
        self._scheduler: Optional[BackgroundScheduler] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._simulator is not None

    @property
    def current_config(self) -> Optional[SimulationConfig]:
        return self._simulator.get_config() if self._simulator else None

    def start(
        self,
        config: SimulationConfig,
        interval_seconds: Optional[float] = None,
        schedule: bool = True,
    ) -> None:
        """Replace any running simulation with a fresh one for *config*.

        *schedule* is False only for callers that drive ``trigger_update``
        themselves.
        """
        if interval_seconds is not None and interval_seconds <= 0:
            raise ValueError("update interval must be positive")

        # Scheduler and simulator are replaced together under the lock.
        with self._lock:
            self.stop()
            if interval_seconds is not None:
                self.update_interval_seconds = interval_seconds

            self._simulator = DigitalTwinSimulator(config, rng=random.Random(self.seed), clock=self.clock)
            self.current_snapshot = None
            self.snapshot_history = []
            self.alerts = []
            self.error = None

            self.trigger_update()

            if schedule:
                self._scheduler = BackgroundScheduler(executors={"default": ThreadPoolExecutor(1)})
                self._add_job()
                self._scheduler.start()

        log.info(
            "Digital twin started for %s (%.1f kWp), updates every %.1f s.",
            config.design_id,
            config.capacity_kwp,
            self.update_interval_seconds,
        )

    def stop(self) -> None:
        with self._lock:
            if self._scheduler is not None:
                self._scheduler.shutdown(wait=False)
                self._scheduler = None

            was_active = self._simulator is not None
            self._simulator = None
            self.current_snapshot = None
            self.snapshot_history = []
            self.alerts = []
            self.error = None

        if was_active:
            log.info("Digital twin stopped.")

    def _add_job(self) -> None:
        self._scheduler.add_job(
            self.trigger_update,
            "interval",
            seconds=self.update_interval_seconds,
            id=_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def trigger_update(self) -> Optional[TelemetrySnapshot]:
        """Fetch weather, run one cycle and file the results.

        Failures are logged and kept in ``error``; they never propagate to
        the scheduler.
        """
        with self._lock:
            simulator = self._simulator
            if simulator is None:
                return None

            try:
                config = simulator.config
                weather = self.weather_client.fetch_current_weather(config.latitude, config.longitude)
                snapshot = simulator.generate_telemetry(weather)
            except Exception as exc:  # noqa: BLE001
                log.exception("Digital twin update failed")
                self.error = str(exc) or exc.__class__.__name__
                return None

            new_alerts = simulator.get_new_alerts()
            if new_alerts:
                self._file_alerts(new_alerts)

            self.current_snapshot = snapshot
            self.snapshot_history = [snapshot, *self.snapshot_history][: self.max_history]
            self.error = None
            return snapshot

    def _file_alerts(self, new_alerts: list[DigitalTwinAlert]) -> None:
        self.alerts = [*new_alerts, *self.alerts][: self.max_alerts]
        for alert in new_alerts:
            if alert.severity == "critical":
                log.error("%s: %s", alert.title, alert.message)
            elif alert.severity == "warning":
                log.warning("%s: %s", alert.title, alert.message)
            else:
                log.info("%s: %s", alert.title, alert.message)

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def _find_alert(self, alert_id: str) -> Optional[DigitalTwinAlert]:
        return next((a for a in self.alerts if a.id == alert_id), None)

    def acknowledge_alert(self, alert_id: str) -> bool:
        """Resolve the fault behind an alert and drop it from the log.

        Returns ``False`` if no alert has that id.
        """
        with self._lock:
            alert = self._find_alert(alert_id)
            if alert is None:
                return False

            if self._simulator is not None:
                if alert.category == "panel" and alert.equipment_id:
                    self._simulator.clear_panel_fault_by_equipment_id(alert.equipment_id)
                elif alert.equipment_id:
                    self._simulator.clear_fault(alert.equipment_id)
                else:
                    self._simulator.clear_system_alert(alert.title)

            self.alerts = [a for a in self.alerts if a.id != alert_id]
            return True

    def clear_alert(self, alert_id: str) -> bool:
        """Drop an alert from the log without touching the simulator."""
        with self._lock:
            before = len(self.alerts)
            self.alerts = [a for a in self.alerts if a.id != alert_id]
            return len(self.alerts) < before

    def clear_all_alerts(self) -> None:
        with self._lock:
            self.alerts = []

    def active_alerts(self) -> list[DigitalTwinAlert]:
        return [a for a in self.alerts if not a.acknowledged]

    def critical_alerts(self) -> list[DigitalTwinAlert]:
        return [a for a in self.alerts if a.severity == "critical" and not a.acknowledged]

    def alerts_by_equipment(self, equipment_id: str) -> list[DigitalTwinAlert]:
        return [a for a in self.alerts if a.equipment_id == equipment_id]

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_update_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError("update interval must be positive")
        with self._lock:
            self.update_interval_seconds = seconds
            if self._scheduler is not None:
                self._add_job()

    def update_config(self, **changes) -> SimulationConfig:
        with self._lock:
            if self._simulator is None:
                raise SimulationNotActiveError("update the configuration")
            return self._simulator.update_config(**changes)

    def set_fault_probability(self, probability: float) -> SimulationConfig:
        return self.update_config(fault_probability=probability)

    def set_soiling_loss(self, loss: float) -> SimulationConfig:
        return self.update_config(soiling_loss=loss)

    def set_mismatch_loss(self, loss: float) -> SimulationConfig:
        return self.update_config(mismatch_loss=loss)

    def set_enable_random_faults(self, enabled: bool) -> SimulationConfig:
        return self.update_config(enable_random_faults=enabled)

    # ------------------------------------------------------------------
    # Manual faults
    # ------------------------------------------------------------------

    def trigger_manual_fault(self, category: InjectableCategory) -> Optional[DigitalTwinAlert]:
        with self._lock:
            if self._simulator is None:
                raise SimulationNotActiveError("trigger faults")

            alert = self._simulator.inject_fault(category)
            if alert is None:
                log.info("No available %s to fault", category)
                return None

            # The injected alert is queued on the simulator; file it now so
            # the next scheduled cycle does not report it a second time.
            self._file_alerts(self._simulator.get_new_alerts())
            return alert
