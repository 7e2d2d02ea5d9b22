"""Fault catalogue and random fault generation for the digital twin.

Every random draw goes through the ``random.Random`` handed to
:class:`FaultSimulator`, so a seeded instance replays the same fault history.
"""

from __future__ import annotations

import random
import uuid
from datetime import datetime
from typing import Callable, Optional

from lib.constants import PERFORMANCE_ALERT_THRESHOLD, PERFORMANCE_CRITICAL_THRESHOLD
from lib.time_util import utc_now
from lib.types import (
    AlertCategory,
    DigitalTwinAlert,
    FaultScenario,
    PanelFault,
    PanelFaultDefinition,
    PanelFaultDraw,
)

# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

INVERTER_FAULTS: list[FaultScenario] = [
    FaultScenario("INV_001", "Grid overvoltage detected - AC output reduced", "inverter", "warning", 30_000),
    FaultScenario("INV_002", "MPPT tracking failure on channel 1", "inverter", "critical", 0),
    FaultScenario("INV_003", "DC insulation resistance below threshold", "inverter", "warning", 60_000),
    FaultScenario("INV_004", "Internal temperature high - output limited", "inverter", "warning", 120_000),
    FaultScenario("INV_005", "Grid frequency out of range", "inverter", "warning", 15_000),
    FaultScenario("INV_006", "Ground fault detected - inverter offline", "inverter", "critical", 0),
]

TRANSFORMER_FAULTS: list[FaultScenario] = [
    FaultScenario("XFR_001", "Winding temperature high - approaching limit", "transformer", "warning", 120_000),
    FaultScenario("XFR_002", "Oil temperature elevated", "transformer", "warning", 180_000),
    FaultScenario("XFR_003", "Tap changer position error", "transformer", "warning", 60_000),
]

COMMUNICATION_FAULTS: list[FaultScenario] = [
    FaultScenario("COMM_001", "Communication timeout - data may be stale", "communication", "warning", 10_000),
    FaultScenario("COMM_002", "Data logger connection lost", "communication", "warning", 30_000),
]

PERFORMANCE_FAULTS: list[FaultScenario] = [
    FaultScenario("PERF_001", "Performance ratio below threshold (PR < 70%)", "performance", "warning", 300_000),
    FaultScenario("PERF_002", "Significant underperformance detected", "performance", "critical", 0),
]

PANEL_FAULTS: list[PanelFaultDefinition] = [
    PanelFaultDefinition("hot_spot", "PNL_001", "Hot spot detected - cell overheating", "warning", 0.6, 120_000),
    PanelFaultDefinition("shading", "PNL_002", "Partial shading detected on panel", "warning", 0.7, 60_000),
    PanelFaultDefinition("soiling_heavy", "PNL_003", "Heavy soiling detected - cleaning required", "warning", 0.75, 300_000),
    PanelFaultDefinition("module_degradation", "PNL_004", "Module degradation - reduced output", "critical", 0.5, 0),
]

ALL_FAULT_SCENARIOS: list[FaultScenario] = [
    *INVERTER_FAULTS,
    *TRANSFORMER_FAULTS,
    *COMMUNICATION_FAULTS,
    *PERFORMANCE_FAULTS,
]


def faults_by_category(category: AlertCategory) -> list[FaultScenario]:
    return [f for f in ALL_FAULT_SCENARIOS if f.category == category]


def panel_equipment_id(panel_index: int) -> str:
    return f"panel-{panel_index}"


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class FaultSimulator:
    """Draws fault alerts from the catalogue.

    Args:
        rng:   Random source for every trial and scenario pick.
        clock: Returns the current (aware, UTC) time for alert timestamps.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.rng = rng or random.Random()
        self.clock = clock

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _new_id(self) -> str:
        return str(uuid.UUID(int=self.rng.getrandbits(128), version=4))

    def _alert(
        self,
        scenario: FaultScenario | PanelFaultDefinition,
        category: AlertCategory,
        message: str,
        equipment_id: Optional[str] = None,
    ) -> DigitalTwinAlert:
        return DigitalTwinAlert(
            id=self._new_id(),
            timestamp=self.clock().isoformat(),
            severity=scenario.severity,
            category=category,
            equipment_id=equipment_id,
            title=scenario.code,
            message=message,
            acknowledged=False,
            auto_clear_ms=scenario.auto_clear_ms,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def should_trigger(self, probability: float) -> bool:
        """One Bernoulli trial."""
        return self.rng.random() < probability

    def generate_random_fault(
        self,
        category: AlertCategory,
        equipment_id: Optional[str] = None,
    ) -> DigitalTwinAlert | None:
        """Pick a random scenario for *category*, ignoring probability.

        Returns ``None`` if the catalogue has nothing for that category.
        """
        scenarios = faults_by_category(category)
        if not scenarios:
            return None
        scenario = self.rng.choice(scenarios)
        return self._alert(scenario, scenario.category, scenario.message, equipment_id)

    def maybe_generate_fault(
        self,
        category: AlertCategory,
        equipment_id: str,
        probability: float,
    ) -> DigitalTwinAlert | None:
        if not self.should_trigger(probability):
            return None
        return self.generate_random_fault(category, equipment_id)

    def random_panel_fault(self) -> PanelFaultDefinition:
        return self.rng.choice(PANEL_FAULTS)

    def generate_panel_fault(self, panel_index: int) -> PanelFaultDraw:
        definition = self.random_panel_fault()
        fault = PanelFault(
            panel_index=panel_index,
            fault_type=definition.type,
            start_time=self.clock().isoformat(),
            performance_impact=definition.performance_impact,
        )
        alert = self._alert(
            definition,
            "panel",
            f"{definition.message} (Panel {panel_index + 1})",
            panel_equipment_id(panel_index),
        )
        return PanelFaultDraw(fault=fault, alert=alert)

    def maybe_generate_panel_fault(self, panel_index: int, probability: float) -> PanelFaultDraw | None:
        if not self.should_trigger(probability):
            return None
        return self.generate_panel_fault(panel_index)

    def check_performance_threshold(
        self,
        performance_ratio: float,
        threshold: float = PERFORMANCE_ALERT_THRESHOLD,
    ) -> DigitalTwinAlert | None:
        """Plant-wide underperformance alert; deterministic in its choice."""
        if performance_ratio >= threshold:
            return None

        scenario = PERFORMANCE_FAULTS[1] if performance_ratio < PERFORMANCE_CRITICAL_THRESHOLD else PERFORMANCE_FAULTS[0]
        return self._alert(scenario, scenario.category, scenario.message)
