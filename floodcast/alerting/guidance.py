"""
Preparation Guidance Resolver.

Pure mapping from countdown bucket (the severity boundaries) to a fixed
action checklist. Same bucket → same guidance, for every caller.
"""

from floodcast.alerting.classifier import SeverityBands, severity_for_countdown
from floodcast.alerting.schemas import PreparationGuidance, Severity

_GUIDANCE: dict[Severity, PreparationGuidance] = {
    Severity.IMMEDIATE: PreparationGuidance(
        priority=Severity.IMMEDIATE,
        message="Take immediate action - flood imminent",
        actions=(
            "Move to higher ground",
            "Secure important documents",
            "Prepare emergency kit",
        ),
        time_estimate="15-30 minutes",
    ),
    Severity.URGENT: PreparationGuidance(
        priority=Severity.URGENT,
        message="Prepare now - flooding expected within 6 hours",
        actions=(
            "Review evacuation plan",
            "Charge devices",
            "Store water and food",
            "Move vehicles",
        ),
        time_estimate="1-2 hours",
    ),
    Severity.WARNING: PreparationGuidance(
        priority=Severity.WARNING,
        message="Begin preparations - flooding possible within 12 hours",
        actions=(
            "Check emergency supplies",
            "Inform family",
            "Monitor updates",
            "Prepare sandbags",
        ),
        time_estimate="2-3 hours",
    ),
    Severity.ADVISORY: PreparationGuidance(
        priority=Severity.ADVISORY,
        message="Monitor conditions - flooding possible within 24 hours",
        actions=(
            "Review flood plan",
            "Check weather updates",
            "Prepare emergency kit",
            "Stay informed",
        ),
        time_estimate="30-60 minutes",
    ),
}


def guidance_for_severity(severity: Severity) -> PreparationGuidance:
    return _GUIDANCE[severity]


def resolve_guidance(countdown_ms: float, bands: SeverityBands) -> PreparationGuidance:
    """Guidance for the countdown bucket the given countdown falls in."""
    return _GUIDANCE[severity_for_countdown(countdown_ms, bands)]
