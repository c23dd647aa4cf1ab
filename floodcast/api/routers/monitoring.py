"""
Monitoring API Endpoints.

POST   /api/v1/monitoring/locations          — start (or restart) monitoring a location
DELETE /api/v1/monitoring/locations          — stop monitoring a location
POST   /api/v1/monitoring/locations/refresh  — run one evaluation now
GET    /api/v1/monitoring/sessions           — list monitoring sessions
DELETE /api/v1/monitoring/sessions           — stop all monitoring
"""

from fastapi import APIRouter, Depends

from floodcast.alerting.schemas import LocationKey, MonitoredLocation, MonitoringSession
from floodcast.api.deps import get_alert_service, location_key_query
from floodcast.service import FloodAlertService

router = APIRouter(prefix="/api/v1/monitoring", tags=["monitoring"])


@router.post("/locations", response_model=MonitoringSession, status_code=201)
async def start_monitoring(
    body: MonitoredLocation,
    service: FloodAlertService = Depends(get_alert_service),
):
    """Start monitoring. The first evaluation runs before this returns."""
    return await service.start_monitoring(body)


@router.delete("/locations")
async def stop_monitoring(
    key: LocationKey = Depends(location_key_query),
    service: FloodAlertService = Depends(get_alert_service),
):
    stopped = await service.stop_monitoring(key)
    return {"location_key": str(key), "stopped": stopped}


@router.post("/locations/refresh")
async def refresh_location(
    key: LocationKey = Depends(location_key_query),
    service: FloodAlertService = Depends(get_alert_service),
):
    """404 when the location is not monitored."""
    alert = await service.refresh(key)
    return {"location_key": str(key), "alert": alert}


@router.get("/sessions", response_model=list[MonitoringSession])
async def list_sessions(service: FloodAlertService = Depends(get_alert_service)):
    return service.sessions()


@router.delete("/sessions")
async def stop_all_monitoring(service: FloodAlertService = Depends(get_alert_service)):
    stopped = await service.stop_all_monitoring()
    return {"stopped": stopped}
