from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional


EquipmentStatus = Literal["online", "warning", "fault", "offline"]
AlertSeverity = Literal["info", "warning", "critical"]
AlertCategory = Literal["inverter", "transformer", "performance", "communication", "weather", "panel"]
PanelFaultType = Literal["hot_spot", "shading", "soiling_heavy", "module_degradation"]
InjectableCategory = Literal["inverter", "transformer", "panel"]


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WeatherSample:
    temperature: float  # °C
    cloud_cover: float  # %
    irradiance: float  # W/m², GHI
    wind_speed: float  # m/s
    humidity: float  # %
    is_day: bool
    sunrise: str  # ISO
    sunset: str  # ISO
    utc_offset_seconds: Optional[int] = None


@dataclass
class SimulationConfig:
    design_id: str
    capacity_kwp: float
    latitude: float
    longitude: float
    inverter_count: int = 1
    transformer_count: int = 1
    panel_count: int = 100
    enable_random_faults: bool = True
    fault_probability: float = 0.01
    soiling_loss: float = 0.02
    mismatch_loss: float = 0.02
    max_concurrent_panel_faults: int = 5


# ---------------------------------------------------------------------------
# Faults and alerts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FaultScenario:
    code: str
    message: str
    category: AlertCategory
    severity: AlertSeverity
    auto_clear_ms: int  # 0 = manual clear


@dataclass(frozen=True)
class PanelFaultDefinition:
    type: PanelFaultType
    code: str
    message: str
    severity: AlertSeverity
    performance_impact: float  # multiplier in (0, 1]
    auto_clear_ms: int


@dataclass
class DigitalTwinAlert:
    id: str
    timestamp: str
    severity: AlertSeverity
    category: AlertCategory
    title: str
    message: str
    equipment_id: Optional[str] = None
    acknowledged: bool = False
    auto_clear_ms: int = 0


@dataclass
class PanelFault:
    panel_index: int
    fault_type: PanelFaultType
    start_time: str
    performance_impact: float


@dataclass
class PanelFaultDraw:
    fault: PanelFault
    alert: DigitalTwinAlert


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass
class SystemMetrics:
    power_output: float  # kW
    energy_today: float  # kWh
    expected_power: float  # kW
    performance_ratio: float
    availability: float  # %
    grid_export: float  # kW


@dataclass
class InverterTelemetry:
    equipment_id: str
    name: str
    status: EquipmentStatus
    dc_power: float
    ac_power: float
    efficiency: float
    temperature: float
    mppt_voltage: list[float] = field(default_factory=list)
    mppt_current: list[float] = field(default_factory=list)
    fault_code: Optional[str] = None
    fault_message: Optional[str] = None


@dataclass
class TransformerTelemetry:
    equipment_id: str
    name: str
    status: EquipmentStatus
    load_percent: float
    temperature: float
    oil_temperature: Optional[float] = None
    tap_position: Optional[int] = None


@dataclass
class PanelFramePerformance:
    panel_index: int
    avg_irradiance: float
    temperature: float
    performance_index: float
    fault_type: Optional[PanelFaultType] = None


@dataclass
class TelemetrySnapshot:
    timestamp: str
    design_id: str
    weather: WeatherSample
    system: SystemMetrics
    inverters: list[InverterTelemetry]
    transformers: list[TransformerTelemetry]
    panel_frames: list[PanelFramePerformance]


# ---------------------------------------------------------------------------
# Simulator bookkeeping
# ---------------------------------------------------------------------------


@dataclass
class ActiveFault:
    alert: DigitalTwinAlert
    expires_at: Optional[datetime] = None  # None = manual clear only


@dataclass
class ActivePanelFault:
    fault: PanelFault
    alert: DigitalTwinAlert
    expires_at: Optional[datetime] = None
