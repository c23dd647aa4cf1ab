"""
Custom exceptions for FloodCast.

None of these are fatal inside the alerting core: every failure degrades
to "no change" plus a log entry. They exist so collaborators and the HTTP
layer can tell the failure kinds apart.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standard error codes for FloodCast."""
    # General errors (1xxx)
    UNKNOWN_ERROR = "E1000"
    CONFIGURATION_ERROR = "E1002"

    # Upstream errors (4xxx)
    PREDICTION_UNAVAILABLE = "E4000"
    NOTIFICATION_SUBMIT_FAILED = "E4010"

    # Monitoring errors (7xxx)
    LOCATION_NOT_MONITORED = "E7000"


class FloodCastError(Exception):
    """
    Base exception for FloodCast.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a log / API friendly dictionary."""
        result: Dict[str, Any] = {
            "error": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


class PredictionFetchError(FloodCastError):
    """Prediction provider unreachable, timed out, or returned garbage."""

    def __init__(self, lat: float, lon: float, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Prediction unavailable for ({lat}, {lon}): {reason}",
            error_code=ErrorCode.PREDICTION_UNAVAILABLE,
            details={"lat": lat, "lon": lon, "reason": reason},
            cause=cause,
        )


class InvalidConfigurationError(FloodCastError):
    """A runtime configuration value was outside its allowed range."""

    def __init__(self, setting: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid value for {setting}: {value!r} ({reason})",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details={"setting": setting, "value": value, "reason": reason},
        )


class NotificationSubmitError(FloodCastError):
    """The delivery sink rejected a notification task."""

    def __init__(self, alert_id: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Notification for alert {alert_id} not submitted: {reason}",
            error_code=ErrorCode.NOTIFICATION_SUBMIT_FAILED,
            details={"alert_id": alert_id},
            cause=cause,
        )


class LocationNotMonitoredError(FloodCastError):
    """Operation requires an active monitoring session that does not exist."""

    def __init__(self, location_key: str):
        super().__init__(
            message=f"Location {location_key} is not being monitored",
            error_code=ErrorCode.LOCATION_NOT_MONITORED,
            details={"location_key": location_key},
        )
