from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from api.clients.open_meteo import OpenMeteoClient
from api.clients.weather import WeatherClient
from api.config import settings
from api.services.digital_twin import DigitalTwinService, SimulationNotActiveError
from lib.types import SimulationConfig, TelemetrySnapshot

router = APIRouter()

INJECTABLE_CATEGORIES = ("inverter", "transformer", "panel")

_weather_client = WeatherClient(
    OpenMeteoClient(base_url=settings.OPEN_METEO_BASE_URL, timeout=settings.WEATHER_TIMEOUT_SECONDS),
    ttl_seconds=settings.WEATHER_CACHE_TTL_SECONDS,
)
digital_twin_service = DigitalTwinService(
    _weather_client,
    update_interval_seconds=settings.UPDATE_INTERVAL_SECONDS,
    seed=settings.SIMULATION_SEED,
)


def get_service() -> DigitalTwinService:
    return digital_twin_service


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class StartRequest(BaseModel):
    design_id: str
    capacity_kwp: float = Field(gt=0)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    inverter_count: int = Field(1, ge=0)
    transformer_count: int = Field(1, ge=0)
    panel_count: int = Field(100, ge=0)
    enable_random_faults: bool = True
    fault_probability: float = Field(0.01, ge=0, le=1)
    soiling_loss: float = Field(0.02, ge=0, le=1)
    mismatch_loss: float = Field(0.02, ge=0, le=1)
    max_concurrent_panel_faults: int = Field(5, ge=0)


class ConfigUpdateRequest(BaseModel):
    capacity_kwp: Optional[float] = Field(None, gt=0)
    inverter_count: Optional[int] = Field(None, ge=0)
    transformer_count: Optional[int] = Field(None, ge=0)
    panel_count: Optional[int] = Field(None, ge=0)
    enable_random_faults: Optional[bool] = None
    fault_probability: Optional[float] = Field(None, ge=0, le=1)
    soiling_loss: Optional[float] = Field(None, ge=0, le=1)
    mismatch_loss: Optional[float] = Field(None, ge=0, le=1)
    max_concurrent_panel_faults: Optional[int] = Field(None, ge=0)


class IntervalRequest(BaseModel):
    seconds: float = Field(gt=0)


class ConfigResponse(BaseModel):
    design_id: str
    capacity_kwp: float
    latitude: float
    longitude: float
    inverter_count: int
    transformer_count: int
    panel_count: int
    enable_random_faults: bool
    fault_probability: float
    soiling_loss: float
    mismatch_loss: float
    max_concurrent_panel_faults: int


class StatusResponse(BaseModel):
    is_active: bool
    update_interval_seconds: float
    error: Optional[str]
    config: Optional[ConfigResponse]


class AlertResponse(BaseModel):
    id: str
    timestamp: str
    severity: str
    category: str
    equipment_id: Optional[str]
    title: str
    message: str
    acknowledged: bool
    auto_clear_ms: int


def _config_response(config: Optional[SimulationConfig]) -> Optional[ConfigResponse]:
    return ConfigResponse(**vars(config)) if config is not None else None


def _status(service: DigitalTwinService) -> StatusResponse:
    return StatusResponse(
        is_active=service.is_active,
        update_interval_seconds=service.update_interval_seconds,
        error=service.error,
        config=_config_response(service.current_config),
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/digital-twin", response_model=StatusResponse)
def status():
    return _status(get_service())


@router.post("/digital-twin/start", response_model=StatusResponse)
def start(body: StartRequest):
    """Start (or restart) the simulation for one plant."""
    service = get_service()
    service.start(SimulationConfig(**body.model_dump()))
    return _status(service)


@router.post("/digital-twin/stop", response_model=StatusResponse)
def stop():
    service = get_service()
    service.stop()
    return _status(service)


@router.post("/digital-twin/update", response_model=TelemetrySnapshot)
def update():
    """Run one cycle immediately, outside the schedule."""
    service = get_service()
    if not service.is_active:
        raise HTTPException(status_code=409, detail="Simulation is not active")
    snapshot = service.trigger_update()
    if snapshot is None:
        raise HTTPException(status_code=502, detail=service.error or "Update failed")
    return snapshot


@router.get("/digital-twin/snapshot", response_model=TelemetrySnapshot)
def snapshot():
    current = get_service().current_snapshot
    if current is None:
        raise HTTPException(status_code=404, detail="No telemetry yet")
    return current


@router.get("/digital-twin/history", response_model=list[TelemetrySnapshot])
def history(limit: int = Query(60, ge=1, le=60)):
    return get_service().snapshot_history[:limit]


@router.get("/digital-twin/alerts", response_model=list[AlertResponse])
def alerts(
    active_only: bool = False,
    critical_only: bool = False,
    equipment_id: Optional[str] = None,
):
    service = get_service()
    if critical_only:
        result = service.critical_alerts()
    elif active_only:
        result = service.active_alerts()
    else:
        result = list(service.alerts)
    if equipment_id is not None:
        result = [a for a in result if a.equipment_id == equipment_id]
    return [AlertResponse(**vars(a)) for a in result]


@router.post("/digital-twin/alerts/{alert_id}/acknowledge", status_code=204)
def acknowledge_alert(alert_id: str):
    """Resolve the underlying fault and remove the alert."""
    if not get_service().acknowledge_alert(alert_id):
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")


@router.delete("/digital-twin/alerts/{alert_id}", status_code=204)
def clear_alert(alert_id: str):
    if not get_service().clear_alert(alert_id):
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")


@router.delete("/digital-twin/alerts", status_code=204)
def clear_all_alerts():
    get_service().clear_all_alerts()


@router.patch("/digital-twin/config", response_model=ConfigResponse)
def update_config(body: ConfigUpdateRequest):
    """Merge the given fields into the live config; history is kept."""
    try:
        config = get_service().update_config(**body.model_dump(exclude_none=True))
    except SimulationNotActiveError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _config_response(config)


@router.put("/digital-twin/interval", response_model=StatusResponse)
def set_interval(body: IntervalRequest):
    service = get_service()
    service.set_update_interval(body.seconds)
    return _status(service)


@router.post("/digital-twin/faults/{category}", response_model=Optional[AlertResponse])
def inject_fault(category: str):
    """Force a fault; ``null`` when every unit of that type is already faulted."""
    if category not in INJECTABLE_CATEGORIES:
        raise HTTPException(status_code=422, detail=f"Unknown fault category {category!r}")
    try:
        alert = get_service().trigger_manual_fault(category)
    except SimulationNotActiveError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return AlertResponse(**vars(alert)) if alert is not None else None
