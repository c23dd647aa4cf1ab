"""
Alert Builder — the single construction path for FloodAlert.

Both the live Location Monitor and the Synthetic Alert Generator go
through build(), so severity, risk level, countdown and guidance can
never diverge between the two. Only the inputs differ:

- live:      countdown basis PREPARATION_WINDOW, window = model timeframe
- synthetic: countdown basis ONSET, window = generated flood period
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from floodcast.alerting.classifier import FloodClassifier, format_countdown
from floodcast.alerting.guidance import resolve_guidance
from floodcast.alerting.schemas import (
    AlertLocation,
    CountdownBasis,
    CurrentConditions,
    FloodAlert,
    FloodTimeframe,
    MonitoredLocation,
    PredictionSnapshot,
    SyntheticWeather,
)

logger = structlog.get_logger(__name__)

DEFAULT_TEMPERATURE_C = 28.0
DEFAULT_HUMIDITY_PCT = 75.0


def format_period(start: datetime, end: datetime) -> str:
    """'DD/MM/YYYY HH:MM - HH:MM'."""
    return f"{start.strftime('%d/%m/%Y %H:%M')} - {end.strftime('%H:%M')}"


class AlertBuilder:
    """Builds immutable FloodAlerts from classified inputs."""

    def __init__(
        self,
        classifier: FloodClassifier,
        immediate_window_hours: float = 2.0,
        default_timeframe_hours: float = 24.0,
    ):
        self.classifier = classifier
        self.immediate_window_hours = immediate_window_hours
        self.default_timeframe_hours = default_timeframe_hours

    def build(
        self,
        *,
        location: MonitoredLocation,
        prediction: PredictionSnapshot,
        lead_time_hours: float,
        basis: CountdownBasis,
        conditions: CurrentConditions,
        expected_rainfall: float,
        window_start_hours: float,
        window_hours: float,
        window_description: Optional[str] = None,
        observed_rainfall: Optional[float] = None,
        is_synthetic: bool = False,
        synthetic_weather: Optional[SyntheticWeather] = None,
        now: Optional[datetime] = None,
    ) -> FloodAlert:
        now = now or datetime.now(timezone.utc)
        classification = self.classifier.classify(
            probability=prediction.probability,
            lead_time_hours=lead_time_hours,
            basis=basis,
            observed_rainfall=observed_rainfall,
        )

        if classification.is_imminent:
            timeframe = FloodTimeframe(
                start=now,
                end=now + timedelta(hours=self.immediate_window_hours),
                description="Flood conditions detected now",
            )
        else:
            start = now + timedelta(hours=window_start_hours)
            end = start + timedelta(hours=window_hours)
            timeframe = FloodTimeframe(
                start=start,
                end=end,
                description=window_description or format_period(start, end),
            )

        prefix = "synthetic" if is_synthetic else "alert"
        alert = FloodAlert(
            id=f"{prefix}_{uuid.uuid4().hex[:16]}",
            location_key=str(location.key),
            location=AlertLocation(name=location.name, lat=location.lat, lng=location.lng),
            flood_timeframe=timeframe,
            countdown_ms=classification.countdown_ms,
            countdown_display=format_countdown(classification.countdown_ms),
            severity=classification.severity,
            risk_level=classification.risk_level,
            probability=prediction.probability,
            expected_rainfall=expected_rainfall,
            current_conditions=conditions,
            prediction_snapshot=prediction,
            preparation_guidance=resolve_guidance(
                classification.countdown_ms, self.classifier.severity_bands
            ),
            created_at=now,
            is_synthetic=is_synthetic,
            synthetic_weather=synthetic_weather,
        )

        logger.debug(
            "alert_built",
            alert_id=alert.id,
            location_key=alert.location_key,
            severity=alert.severity.value,
            risk_level=alert.risk_level.value,
            countdown_ms=alert.countdown_ms,
            basis=basis.value,
        )
        return alert

    def from_prediction(
        self,
        location: MonitoredLocation,
        prediction: PredictionSnapshot,
        now: Optional[datetime] = None,
    ) -> FloodAlert:
        """Live path: countdown is a preparation window inside the model timeframe."""
        timeframe_hours = (
            prediction.timeframe_hours
            if prediction.timeframe_hours is not None
            else self.default_timeframe_hours
        )
        window_hours = timeframe_hours + (prediction.expected_duration_hours or 0.0)
        return self.build(
            location=location,
            prediction=prediction,
            lead_time_hours=timeframe_hours,
            basis=CountdownBasis.PREPARATION_WINDOW,
            conditions=CurrentConditions(
                rainfall=prediction.current_rainfall or 0.0,
                temperature=(
                    prediction.current_temp
                    if prediction.current_temp is not None
                    else DEFAULT_TEMPERATURE_C
                ),
                humidity=(
                    prediction.humidity
                    if prediction.humidity is not None
                    else DEFAULT_HUMIDITY_PCT
                ),
            ),
            expected_rainfall=prediction.rainfall_24h,
            window_start_hours=0.0,
            window_hours=window_hours,
            window_description=(
                f"Model predicts {round(prediction.probability * 100)}% flood risk "
                f"within {timeframe_hours:g} hours"
            ),
            observed_rainfall=prediction.current_rainfall,
            now=now,
        )
