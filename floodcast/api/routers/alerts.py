"""
Alert API Endpoints.

GET  /api/v1/alerts                          — list live alerts
GET  /api/v1/alerts/lookup                   — live alert for one location
POST /api/v1/alerts/dismiss                  — dismiss the alert for a location
GET  /api/v1/alerts/history                  — recent set / clear transitions

GET  /api/v1/alerts/settings                 — trigger threshold + enabled flag
PUT  /api/v1/alerts/settings                 — update them

POST /api/v1/alerts/synthetic                — generate a synthetic alert
GET  /api/v1/alerts/synthetic/scenarios      — list demo scenarios
POST /api/v1/alerts/synthetic/scenarios/random  — trigger a random demo scenario
POST /api/v1/alerts/synthetic/scenarios/{key} — trigger a demo scenario
POST /api/v1/alerts/test-prediction          — run a test prediction through the live path
POST /api/v1/alerts/test-notification        — send one test notification
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from floodcast.alerting.schemas import (
    AlertHistoryEntry,
    FloodAlert,
    LocationKey,
    MonitoredLocation,
)
from floodcast.alerting.synthetic import (
    DEMO_SCENARIOS,
    PROBABILITY_OPTIONS,
    TEST_LOCATIONS,
    TIMEFRAME_OPTIONS,
    SyntheticAlertGenerator,
)
from floodcast.api.deps import get_alert_service, location_key_query
from floodcast.exceptions import InvalidConfigurationError
from floodcast.service import FloodAlertService

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


class DismissRequest(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
    location_id: Optional[str] = None


class AlertSettingsUpdate(BaseModel):
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    enabled: Optional[bool] = None


class SyntheticAlertRequest(BaseModel):
    probability: float = Field(ge=0.0, le=1.0)
    lead_time_hours: float = Field(ge=0.0)
    location: Optional[MonitoredLocation] = None


class TestPredictionRequest(BaseModel):
    probability: float = Field(ge=0.0, le=1.0)
    location: Optional[MonitoredLocation] = None


class SyntheticAlertResponse(BaseModel):
    created: bool
    alert: Optional[FloodAlert] = None


# ── Live alerts ────────────────────────────────────────────────────────


@router.get("", response_model=list[FloodAlert])
async def list_alerts(service: FloodAlertService = Depends(get_alert_service)):
    return service.list_active_alerts()


@router.get("/lookup", response_model=FloodAlert)
async def get_alert(
    key: LocationKey = Depends(location_key_query),
    service: FloodAlertService = Depends(get_alert_service),
):
    alert = service.get_active_alert(key)
    if alert is None:
        raise HTTPException(status_code=404, detail=f"No active alert for {key}")
    return alert


@router.post("/dismiss")
async def dismiss_alert(
    body: DismissRequest,
    service: FloodAlertService = Depends(get_alert_service),
):
    key = LocationKey.from_coordinates(body.lat, body.lng, body.location_id)
    dismissed = await service.dismiss_alert(key)
    return {"location_key": str(key), "dismissed": dismissed}


@router.get("/history", response_model=list[AlertHistoryEntry])
async def alert_history(
    limit: int = Query(50, ge=1, le=1000),
    service: FloodAlertService = Depends(get_alert_service),
):
    return service.history(limit)


# ── Settings ───────────────────────────────────────────────────────────


@router.get("/settings")
async def get_alert_settings(service: FloodAlertService = Depends(get_alert_service)):
    return service.get_alert_settings()


@router.put("/settings")
async def update_alert_settings(
    body: AlertSettingsUpdate,
    service: FloodAlertService = Depends(get_alert_service),
):
    """Out-of-range thresholds are rejected with 400 and change nothing."""
    if body.threshold is not None and not service.set_alert_trigger_threshold(body.threshold):
        current = service.get_alert_settings()
        raise InvalidConfigurationError(
            "alert_trigger_threshold",
            body.threshold,
            f"must be between {current['min']} and {current['max']}",
        )
    if body.enabled is not None:
        service.set_alerts_enabled(body.enabled)
    return service.get_alert_settings()


# ── Synthetic / testing ────────────────────────────────────────────────


@router.post("/synthetic", response_model=SyntheticAlertResponse)
async def generate_synthetic_alert(
    body: SyntheticAlertRequest,
    service: FloodAlertService = Depends(get_alert_service),
):
    """Below-threshold probabilities return created=false (and clear the location)."""
    location = body.location or TEST_LOCATIONS[0]
    alert = await service.generate_synthetic_alert(
        body.probability, body.lead_time_hours, location
    )
    return SyntheticAlertResponse(created=alert is not None, alert=alert)


@router.get("/synthetic/scenarios")
async def list_scenarios():
    return {
        "scenarios": SyntheticAlertGenerator.list_scenarios(),
        "locations": [loc.model_dump() for loc in TEST_LOCATIONS],
        "timeframe_options": list(TIMEFRAME_OPTIONS),
        "probability_options": list(PROBABILITY_OPTIONS),
    }


@router.post("/synthetic/scenarios/random", response_model=SyntheticAlertResponse)
async def trigger_random_scenario(service: FloodAlertService = Depends(get_alert_service)):
    alert = await service.trigger_random_scenario()
    return SyntheticAlertResponse(created=alert is not None, alert=alert)


@router.post("/synthetic/scenarios/{scenario_key}", response_model=SyntheticAlertResponse)
async def trigger_scenario(
    scenario_key: str,
    service: FloodAlertService = Depends(get_alert_service),
):
    if scenario_key not in DEMO_SCENARIOS:
        raise HTTPException(status_code=404, detail=f"Unknown scenario: {scenario_key}")
    alert = await service.trigger_scenario(scenario_key)
    return SyntheticAlertResponse(created=alert is not None, alert=alert)


@router.post("/test-prediction", response_model=SyntheticAlertResponse)
async def trigger_test_prediction(
    body: TestPredictionRequest,
    service: FloodAlertService = Depends(get_alert_service),
):
    """Run a fixed 12h test prediction through the live alert path."""
    location = body.location or TEST_LOCATIONS[0]
    alert = await service.trigger_test_prediction_alert(body.probability, location)
    return SyntheticAlertResponse(created=alert is not None, alert=alert)


@router.post("/test-notification")
async def send_test_notification(service: FloodAlertService = Depends(get_alert_service)):
    result = await service.send_test_notification()
    return {"submitted": result is not None, "handle": result.handle if result else None}
