SECONDS_IN_HOUR: int = 3600

G_STC: float = 1000.0  # W/m², STC irradiance
T_STC: float = 25.0  # °C, STC cell temperature
SOLAR_CONSTANT: float = 1361.0  # W/m²

DEFAULT_TEMP_COEFFICIENT: float = -0.004  # /°C, crystalline silicon
DEFAULT_NOCT: float = 45.0  # °C
DEFAULT_SYSTEM_LOSSES: float = 0.14

INVERTER_DC_AC_RATIO: float = 1.02
MPPT_NOMINAL_VOLTAGE: float = 650.0  # V
TRANSFORMER_FLEET_RATING: float = 1.1  # × plant capacity
TRANSFORMER_BASE_TEMP: float = 40.0  # °C
TRANSFORMER_NEUTRAL_TAP: int = 5
STATION_CONSUMPTION_FACTOR: float = 0.98  # grid export / production

PERFORMANCE_ALERT_THRESHOLD: float = 0.7
PERFORMANCE_CRITICAL_THRESHOLD: float = 0.5

INVERTER_OVERTEMP_CODE: str = "INV_004"
TRANSFORMER_WINDING_TEMP_CODE: str = "XFR_001"
TRANSFORMER_OIL_TEMP_CODE: str = "XFR_002"

MAX_ALERT_LOG: int = 100
MAX_SNAPSHOT_HISTORY: int = 60
