"""
Alerting Schemas.

Defines locations and their keys, prediction snapshots, alerts,
preparation guidance, notification tasks, and monitoring sessions.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Enums ──────────────────────────────────────────────────────────────


class Severity(StrEnum):
    """Urgency tier, derived from countdown only. Ordered low → high."""
    ADVISORY = "advisory"
    WARNING = "warning"
    URGENT = "urgent"
    IMMEDIATE = "immediate"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


class RiskLevel(StrEnum):
    """Magnitude tier, derived from probability only. Ordered low → high."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)


_SEVERITY_ORDER = [Severity.ADVISORY, Severity.WARNING, Severity.URGENT, Severity.IMMEDIATE]
_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.VERY_HIGH]


class CountdownBasis(StrEnum):
    """How countdown is derived from a lead time."""
    PREPARATION_WINDOW = "preparation_window"   # fraction of the predicted timeframe
    ONSET = "onset"                             # literal time until onset


class NotificationPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    MAX = "max"


class NotificationKind(StrEnum):
    FLOOD_WARNING = "flood_warning"
    REMINDER = "reminder"
    CONDITION_WORSENED = "condition_worsened"
    CONDITION_IMPROVED = "condition_improved"
    TEST = "test_notification"


class AlertChange(StrEnum):
    """Kind of Alert Store transition (used in history)."""
    SET = "set"
    CLEARED = "cleared"
    DISMISSED = "dismissed"


# ── Location ───────────────────────────────────────────────────────────

# Coordinates are quantised to micro-degrees (~0.11 m) for identity.
_KEY_SCALE = 1_000_000


@dataclass(frozen=True)
class LocationKey:
    """
    Stable identity of a monitored location.

    Structured (not a "lat_lng" string) so that 3.1 and 3.10 resolve to the
    same key. A caller-supplied location_id is part of the identity.
    """
    lat_e6: int
    lng_e6: int
    location_id: Optional[str] = None

    @classmethod
    def from_coordinates(
        cls, lat: float, lng: float, location_id: Optional[str] = None
    ) -> "LocationKey":
        return cls(
            lat_e6=round(lat * _KEY_SCALE),
            lng_e6=round(lng * _KEY_SCALE),
            location_id=location_id or None,
        )

    @property
    def lat(self) -> float:
        return self.lat_e6 / _KEY_SCALE

    @property
    def lng(self) -> float:
        return self.lng_e6 / _KEY_SCALE

    def __str__(self) -> str:
        base = f"{self.lat:.6f},{self.lng:.6f}"
        return f"{self.location_id}@{base}" if self.location_id else base


class MonitoredLocation(BaseModel):
    """A location supplied by a caller (UI, config, API)."""
    name: str = "Your Location"
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
    location_id: Optional[str] = None

    @property
    def key(self) -> LocationKey:
        return LocationKey.from_coordinates(self.lat, self.lng, self.location_id)


# ── Prediction (external input) ────────────────────────────────────────


class PredictionSnapshot(BaseModel):
    """
    One evaluation from the external prediction provider.

    Treated as opaque; only range defaults are applied (probability clamped
    to [0, 1], negative timeframes floored at 0).
    """
    probability: float = 0.0
    timeframe_hours: Optional[float] = None
    confidence: Union[float, str] = 0.0
    rainfall_24h: float = 0.0
    current_temp: Optional[float] = None
    humidity: Optional[float] = None
    current_rainfall: Optional[float] = None     # mm/h, if the provider observes it
    expected_duration_hours: Optional[float] = None
    model_version: str = "unknown"

    @field_validator("probability")
    @classmethod
    def _clamp_probability(cls, v: float) -> float:
        return min(1.0, max(0.0, v))

    @field_validator("timeframe_hours", "expected_duration_hours")
    @classmethod
    def _floor_hours(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return None
        return max(0.0, v)


# ── Alert parts ────────────────────────────────────────────────────────


class FloodTimeframe(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    description: str


class CurrentConditions(BaseModel):
    model_config = ConfigDict(frozen=True)

    rainfall: float = 0.0
    temperature: float = 28.0
    humidity: float = 75.0


class PreparationGuidance(BaseModel):
    model_config = ConfigDict(frozen=True)

    priority: Severity
    message: str
    actions: tuple[str, ...]
    time_estimate: str


class AlertLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    lat: float
    lng: float


class SyntheticWeather(BaseModel):
    """Weather synthesized for a synthetic alert (kept for inspection)."""
    model_config = ConfigDict(frozen=True)

    precipitation: float
    temperature: float
    humidity: float
    pressure: float
    wind_speed: float
    wind_direction: str
    precipitation_sum_24h: float
    river_discharge: float
    river_level: float
    river_normal_range: str = "4-6"


class Classification(BaseModel):
    """Classifier output."""
    model_config = ConfigDict(frozen=True)

    severity: Severity
    risk_level: RiskLevel
    countdown_ms: int
    is_imminent: bool


# ── Alert ──────────────────────────────────────────────────────────────


class FloodAlert(BaseModel):
    """
    The live record of an active hazard condition for one location.

    Immutable: a changed condition produces a new FloodAlert that replaces
    this one in the store.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    location_key: str
    location: AlertLocation
    flood_timeframe: FloodTimeframe
    countdown_ms: int
    countdown_display: str
    severity: Severity
    risk_level: RiskLevel
    probability: float
    expected_rainfall: float
    current_conditions: CurrentConditions
    prediction_snapshot: PredictionSnapshot
    preparation_guidance: PreparationGuidance
    created_at: datetime
    is_active: bool = True
    is_synthetic: bool = False
    synthetic_weather: Optional[SyntheticWeather] = None


class AlertHistoryEntry(BaseModel):
    location_key: str
    change: AlertChange
    alert_id: Optional[str] = None
    severity: Optional[Severity] = None
    recorded_at: datetime


# ── Notifications ──────────────────────────────────────────────────────


class NotificationTask(BaseModel):
    """
    One unit of work for the delivery sink.

    trigger_at=None means "fire immediately".
    """
    model_config = ConfigDict(frozen=True)

    trigger_at: Optional[datetime] = None
    title: str
    body: str
    priority: NotificationPriority
    kind: NotificationKind = NotificationKind.FLOOD_WARNING
    metadata: dict = Field(default_factory=dict)


class ScheduledNotification(BaseModel):
    """A task accepted by the sink, with the handle needed to cancel it."""
    handle: str
    location_key: str
    alert_id: str
    task: NotificationTask


# ── Monitoring ─────────────────────────────────────────────────────────


class MonitoringSession(BaseModel):
    """Runtime record of one location being monitored."""
    location_key: str
    location: MonitoredLocation
    active: bool = True
    started_at: datetime
    generation: int
    last_tick_at: Optional[datetime] = None
    last_error: Optional[str] = None
    tick_count: int = 0
