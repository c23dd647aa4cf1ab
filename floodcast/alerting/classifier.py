"""
Severity / Risk Classifier — maps (probability, lead time) to alert tiers.

- Severity is a function of countdown only (hour boundaries)
- Risk level is a function of probability only (probability boundaries)
- Countdown is derived from lead time according to a CountdownBasis

Both boundary tables are runtime configuration. Replacing a table with an
unordered one is rejected (logged no-op), never partially applied.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, model_validator

from floodcast.alerting.schemas import (
    Classification,
    CountdownBasis,
    RiskLevel,
    Severity,
)
from floodcast.config import Settings
from floodcast.exceptions import InvalidConfigurationError

logger = structlog.get_logger(__name__)

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE


# ── Boundary tables ────────────────────────────────────────────────────


class SeverityBands(BaseModel):
    """Countdown hour boundaries (inclusive upper bounds)."""
    immediate_hours: float = 2.0
    urgent_hours: float = 6.0
    warning_hours: float = 12.0

    @model_validator(mode="after")
    def _check_order(self) -> "SeverityBands":
        if not 0 <= self.immediate_hours <= self.urgent_hours <= self.warning_hours:
            raise ValueError(
                "severity bands must satisfy 0 <= immediate <= urgent <= warning"
            )
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "SeverityBands":
        return cls(
            immediate_hours=settings.severity_immediate_hours,
            urgent_hours=settings.severity_urgent_hours,
            warning_hours=settings.severity_warning_hours,
        )


class RiskBands(BaseModel):
    """Probability boundaries (inclusive lower bounds)."""
    very_high: float = 0.8
    high: float = 0.6
    medium: float = 0.3

    @model_validator(mode="after")
    def _check_order(self) -> "RiskBands":
        if not 0 <= self.medium <= self.high <= self.very_high <= 1:
            raise ValueError(
                "risk bands must satisfy 0 <= medium <= high <= very_high <= 1"
            )
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "RiskBands":
        return cls(
            very_high=settings.risk_very_high_threshold,
            high=settings.risk_high_threshold,
            medium=settings.risk_medium_threshold,
        )


# ── Pure functions ─────────────────────────────────────────────────────


def severity_for_countdown(countdown_ms: float, bands: SeverityBands) -> Severity:
    """Severity tier for a countdown. Monotonic: less time → more severe."""
    hours = countdown_ms / MS_PER_HOUR
    if hours <= bands.immediate_hours:
        return Severity.IMMEDIATE
    if hours <= bands.urgent_hours:
        return Severity.URGENT
    if hours <= bands.warning_hours:
        return Severity.WARNING
    return Severity.ADVISORY


def risk_level_for_probability(probability: float, bands: RiskBands) -> RiskLevel:
    """Risk tier for a probability in [0, 1]."""
    if probability >= bands.very_high:
        return RiskLevel.VERY_HIGH
    if probability >= bands.high:
        return RiskLevel.HIGH
    if probability >= bands.medium:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def format_countdown(milliseconds: float) -> str:
    """
    Human readable countdown.

    0 (or less) → "Flood conditions now"; a day component appears from 24h.
    """
    if milliseconds <= 0:
        return "Flood conditions now"

    total_hours = int(milliseconds // MS_PER_HOUR)
    minutes = int((milliseconds % MS_PER_HOUR) // MS_PER_MINUTE)

    if total_hours >= 24:
        days, remaining_hours = divmod(total_hours, 24)
        return f"{days}d {remaining_hours}h remaining"
    if total_hours > 0:
        return f"{total_hours}h {minutes}m remaining"
    return f"{minutes}m remaining"


# ── Classifier ─────────────────────────────────────────────────────────


class FloodClassifier:
    """
    Stateful holder of the boundary tables; classification itself is pure.

    One instance per service. The live monitor and the synthetic generator
    share the same instance so tuning applies to both paths.
    """

    def __init__(
        self,
        severity_bands: Optional[SeverityBands] = None,
        risk_bands: Optional[RiskBands] = None,
        preparation_window_fraction: float = 0.25,
        imminent_rainfall_mm_per_hour: float = 50.0,
    ):
        self.severity_bands = severity_bands or SeverityBands()
        self.risk_bands = risk_bands or RiskBands()
        self.preparation_window_fraction = preparation_window_fraction
        self.imminent_rainfall_mm_per_hour = imminent_rainfall_mm_per_hour

    @classmethod
    def from_settings(cls, settings: Settings) -> "FloodClassifier":
        return cls(
            severity_bands=SeverityBands.from_settings(settings),
            risk_bands=RiskBands.from_settings(settings),
            preparation_window_fraction=settings.preparation_window_fraction,
            imminent_rainfall_mm_per_hour=settings.imminent_rainfall_mm_per_hour,
        )

    def countdown_for(self, lead_time_hours: float, basis: CountdownBasis) -> int:
        """Countdown in milliseconds for a lead time under the given basis."""
        hours = max(0.0, lead_time_hours)
        if basis == CountdownBasis.PREPARATION_WINDOW:
            hours *= self.preparation_window_fraction
        return int(round(hours * MS_PER_HOUR))

    def is_imminent(self, lead_time_hours: float, observed_rainfall: Optional[float]) -> bool:
        if lead_time_hours <= 0:
            return True
        return (
            observed_rainfall is not None
            and observed_rainfall > self.imminent_rainfall_mm_per_hour
        )

    def classify(
        self,
        probability: float,
        lead_time_hours: float,
        basis: CountdownBasis = CountdownBasis.PREPARATION_WINDOW,
        observed_rainfall: Optional[float] = None,
    ) -> Classification:
        """
        Classify one evaluation.

        Imminent conditions (zero lead time, or observed rainfall above the
        heavy-rain cutoff) force severity=immediate and countdown=0.
        """
        imminent = self.is_imminent(lead_time_hours, observed_rainfall)
        countdown_ms = 0 if imminent else self.countdown_for(lead_time_hours, basis)
        severity = (
            Severity.IMMEDIATE if imminent
            else severity_for_countdown(countdown_ms, self.severity_bands)
        )
        return Classification(
            severity=severity,
            risk_level=risk_level_for_probability(probability, self.risk_bands),
            countdown_ms=countdown_ms,
            is_imminent=imminent,
        )

    # ── Runtime tuning ────────────────────────────────────────────────

    def set_severity_bands(self, **hours: float) -> bool:
        """Replace severity boundaries. Returns False (and keeps the old table) on invalid input."""
        try:
            candidate = SeverityBands(**{**self.severity_bands.model_dump(), **hours})
        except ValueError as e:
            error = InvalidConfigurationError("severity_bands", hours, str(e))
            logger.warning("severity_bands_rejected", **error.to_dict())
            return False
        self.severity_bands = candidate
        logger.info("severity_bands_updated", **candidate.model_dump())
        return True

    def set_risk_bands(self, **thresholds: float) -> bool:
        """Replace risk boundaries. Returns False (and keeps the old table) on invalid input."""
        try:
            candidate = RiskBands(**{**self.risk_bands.model_dump(), **thresholds})
        except ValueError as e:
            error = InvalidConfigurationError("risk_bands", thresholds, str(e))
            logger.warning("risk_bands_rejected", **error.to_dict())
            return False
        self.risk_bands = candidate
        logger.info("risk_bands_updated", **candidate.model_dump())
        return True


# ── Alert trigger gate ─────────────────────────────────────────────────


class AlertTrigger:
    """
    Whether a probability raises an alert at all.

    Separate from the risk bands: risk level describes magnitude, the
    trigger threshold decides existence. Shared by the live monitor and
    the synthetic generator.
    """

    def __init__(
        self,
        threshold: float = 0.6,
        min_threshold: float = 0.5,
        max_threshold: float = 0.95,
        enabled: bool = True,
    ):
        if not min_threshold <= threshold <= max_threshold:
            raise InvalidConfigurationError(
                "alert_trigger_threshold",
                threshold,
                f"must be between {min_threshold} and {max_threshold}",
            )
        self.threshold = threshold
        self.min_threshold = min_threshold
        self.max_threshold = max_threshold
        self.enabled = enabled

    @classmethod
    def from_settings(cls, settings: Settings) -> "AlertTrigger":
        return cls(
            threshold=settings.alert_trigger_threshold,
            min_threshold=settings.alert_threshold_min,
            max_threshold=settings.alert_threshold_max,
            enabled=settings.alerts_enabled,
        )

    def qualifies(self, probability: float) -> bool:
        return probability >= self.threshold

    def set_threshold(self, value: float) -> bool:
        """Accept only values inside [min, max]; anything else is a logged no-op."""
        if not self.min_threshold <= value <= self.max_threshold:
            error = InvalidConfigurationError(
                "alert_trigger_threshold",
                value,
                f"must be between {self.min_threshold:.0%} and {self.max_threshold:.0%}",
            )
            logger.warning(
                "alert_threshold_rejected",
                current=self.threshold,
                **error.to_dict(),
            )
            return False
        self.threshold = value
        logger.info("alert_threshold_set", threshold=value, percent=round(value * 100))
        return True

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        logger.info("alerts_enabled_set", enabled=enabled)

    def snapshot(self) -> dict:
        return {
            "enabled": self.enabled,
            "threshold": self.threshold,
            "threshold_percent": round(self.threshold * 100),
            "min": self.min_threshold,
            "max": self.max_threshold,
        }
