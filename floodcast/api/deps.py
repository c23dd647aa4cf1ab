"""
FastAPI dependencies for the API routes.

The service instance lives on app.state so tests can inject their own.
"""

from typing import Optional

from fastapi import Query, Request

from floodcast.alerting.schemas import LocationKey
from floodcast.service import FloodAlertService


def get_alert_service(request: Request) -> FloodAlertService:
    return request.app.state.alert_service


def location_key_query(
    lat: float = Query(..., ge=-90.0, le=90.0),
    lng: float = Query(..., ge=-180.0, le=180.0),
    location_id: Optional[str] = Query(None),
) -> LocationKey:
    """Identify a location by query parameters."""
    return LocationKey.from_coordinates(lat, lng, location_id)


__all__ = ["get_alert_service", "location_key_query"]
