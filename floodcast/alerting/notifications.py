"""
Notification Scheduler — tiered, time-delayed notification tasks per alert.

Tiering by severity (offsets relative to alert.created_at):
- immediate: one task now, max priority
- urgent:    one task now (high) + reminder at +30 min
- warning:   one task now (normal) + reminder at countdown − 2h, if positive
- advisory:  one task now (low) + reminder at countdown − 6h, if positive

The scheduler only guarantees SUBMISSION to the sink with the correct
trigger time. Deferred task handles are tracked per location key so that
dismiss / clear / stop can cancel pending reminders deterministically.
A sink failure is logged and never rolls back the alert store.
"""

from datetime import timedelta
from typing import Optional, Protocol

import structlog
from pydantic import BaseModel

from floodcast.alerting.classifier import MS_PER_HOUR, format_countdown
from floodcast.alerting.dedup import NotificationDedup
from floodcast.alerting.schemas import (
    FloodAlert,
    NotificationKind,
    NotificationPriority,
    NotificationTask,
    ScheduledNotification,
    Severity,
)
from floodcast.config import Settings
from floodcast.exceptions import NotificationSubmitError

logger = structlog.get_logger(__name__)

# Condition-change thresholds (probability points)
WORSENED_PROBABILITY_RISE: float = 0.2
IMPROVED_PROBABILITY_DROP: float = 0.2
ELEVATED_PROBABILITY: float = 0.6
_EPS = 1e-9


class NotificationSink(Protocol):
    """Protocol for the external delivery sink."""

    async def submit(self, task: NotificationTask) -> str:
        """Accept a task; returns a handle usable with cancel()."""
        ...

    async def cancel(self, handle: str) -> None:
        """Cancel a pending task. Unknown / already-fired handles are a no-op."""
        ...


class NotificationTiers(BaseModel):
    urgent_reminder_minutes: float = 30.0
    warning_reminder_lead_hours: float = 2.0
    advisory_reminder_lead_hours: float = 6.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationTiers":
        return cls(
            urgent_reminder_minutes=settings.urgent_reminder_minutes,
            warning_reminder_lead_hours=settings.warning_reminder_lead_hours,
            advisory_reminder_lead_hours=settings.advisory_reminder_lead_hours,
        )


_PRIORITY = {
    Severity.IMMEDIATE: NotificationPriority.MAX,
    Severity.URGENT: NotificationPriority.HIGH,
    Severity.WARNING: NotificationPriority.NORMAL,
    Severity.ADVISORY: NotificationPriority.LOW,
}

_RISK_LABEL = {
    "low": "Low",
    "medium": "Medium",
    "high": "High",
    "very_high": "Very High",
}


def _metadata(alert: FloodAlert, kind: NotificationKind) -> dict:
    return {
        "alert_id": alert.id,
        "severity": alert.severity.value,
        "risk_level": alert.risk_level.value,
        "location_key": alert.location_key,
        "location": alert.location.name,
        "kind": kind.value,
        "synthetic": alert.is_synthetic,
    }


def _headline(alert: FloodAlert, countdown_display: str) -> tuple[str, str]:
    name = alert.location.name
    risk = _RISK_LABEL[alert.risk_level.value]
    if alert.severity == Severity.IMMEDIATE:
        return (
            "🚨 FLOOD ALERT - IMMEDIATE ACTION REQUIRED",
            f"Flooding detected at {name}. Take immediate precautions.",
        )
    if alert.severity == Severity.URGENT:
        return (
            "⚠️ Flood Warning - Action Needed",
            f"{name}: {risk} flood risk. {countdown_display} to prepare.",
        )
    if alert.severity == Severity.WARNING:
        return (
            "🌧️ Flood Watch - Be Prepared",
            f"{name}: Flood possible. {countdown_display} to prepare.",
        )
    return (
        "📱 Flood Advisory",
        f"{name}: Monitor conditions. {countdown_display}",
    )


def build_tasks(alert: FloodAlert, tiers: NotificationTiers) -> list[NotificationTask]:
    """Pure tier expansion of one alert into notification tasks."""
    priority = _PRIORITY[alert.severity]
    title, body = _headline(alert, alert.countdown_display)
    tasks = [
        NotificationTask(
            trigger_at=None,
            title=title,
            body=body,
            priority=priority,
            kind=NotificationKind.FLOOD_WARNING,
            metadata=_metadata(alert, NotificationKind.FLOOD_WARNING),
        )
    ]

    if alert.severity == Severity.URGENT:
        offset_ms = tiers.urgent_reminder_minutes * 60 * 1000
    elif alert.severity == Severity.WARNING:
        offset_ms = alert.countdown_ms - tiers.warning_reminder_lead_hours * MS_PER_HOUR
    elif alert.severity == Severity.ADVISORY:
        offset_ms = alert.countdown_ms - tiers.advisory_reminder_lead_hours * MS_PER_HOUR
    else:
        offset_ms = 0

    if offset_ms > 0:
        remaining = format_countdown(max(0, alert.countdown_ms - offset_ms))
        r_title, r_body = _headline(alert, remaining)
        tasks.append(
            NotificationTask(
                trigger_at=alert.created_at + timedelta(milliseconds=offset_ms),
                title=f"⏰ Reminder: {r_title}",
                body=r_body,
                priority=priority,
                kind=NotificationKind.REMINDER,
                metadata=_metadata(alert, NotificationKind.REMINDER),
            )
        )
    return tasks


def build_condition_update(
    previous: FloodAlert, current: FloodAlert
) -> Optional[NotificationTask]:
    """
    Update notification when a replacement alert differs materially in risk.

    - probability up ≥ 0.2, or risk level up while ≥ 0.6 → condition_worsened
    - probability down ≥ 0.2 from a prior ≥ 0.6          → condition_improved
    """
    delta = current.probability - previous.probability
    name = current.location.name
    risk = _RISK_LABEL[current.risk_level.value]

    worsened = delta >= WORSENED_PROBABILITY_RISE - _EPS or (
        current.risk_level.rank > previous.risk_level.rank
        and current.probability >= ELEVATED_PROBABILITY
    )
    if worsened:
        kind = NotificationKind.CONDITION_WORSENED
        return NotificationTask(
            title="📈 Flood Risk Increased",
            body=f"{name}: now {risk} risk. {current.countdown_display}",
            priority=(
                NotificationPriority.HIGH
                if current.probability >= 0.8
                else NotificationPriority.NORMAL
            ),
            kind=kind,
            metadata={**_metadata(current, kind), "previous_alert_id": previous.id},
        )

    if delta <= -IMPROVED_PROBABILITY_DROP + _EPS and previous.probability >= ELEVATED_PROBABILITY:
        kind = NotificationKind.CONDITION_IMPROVED
        return NotificationTask(
            title="📉 Flood Risk Decreasing",
            body=f"{name}: now {risk} risk. Conditions improving",
            priority=NotificationPriority.LOW,
            kind=kind,
            metadata={**_metadata(current, kind), "previous_alert_id": previous.id},
        )
    return None


class NotificationScheduler:
    """
    Submits tier tasks to the sink and tracks deferred handles per location.

    Callers serialize calls for one location key (the store key lock).
    """

    def __init__(
        self,
        sink: NotificationSink,
        tiers: Optional[NotificationTiers] = None,
        dedup: Optional[NotificationDedup] = None,
    ):
        self.sink = sink
        self.tiers = tiers or NotificationTiers()
        self.dedup = dedup or NotificationDedup()
        self._pending: dict[str, list[ScheduledNotification]] = {}

    async def schedule(
        self, alert: FloodAlert, previous: Optional[FloodAlert] = None
    ) -> list[ScheduledNotification]:
        """
        Hand an alert to the sink.

        A replacement with unchanged content inside the cooldown is not
        resubmitted. Otherwise pending reminders for the location are
        cancelled first, then the new tier is submitted.
        """
        suppressed, reason = self.dedup.should_suppress(alert)
        if suppressed:
            logger.info(
                "notification_suppressed",
                location_key=alert.location_key,
                alert_id=alert.id,
                reason=reason,
            )
            return []

        await self.cancel_for_location(alert.location_key)

        tasks = build_tasks(alert, self.tiers)
        if previous is not None:
            update = build_condition_update(previous, alert)
            if update is not None:
                tasks.append(update)

        scheduled: list[ScheduledNotification] = []
        for task in tasks:
            result = await self._submit(alert.location_key, alert.id, task)
            if result is not None:
                scheduled.append(result)

        if scheduled:
            self.dedup.record_sent(alert)
        logger.info(
            "notifications_scheduled",
            location_key=alert.location_key,
            alert_id=alert.id,
            severity=alert.severity.value,
            submitted=len(scheduled),
            requested=len(tasks),
        )
        return scheduled

    async def send_test_notification(self) -> Optional[ScheduledNotification]:
        """Submit one immediate test task to verify sink wiring."""
        task = NotificationTask(
            title="TEST: FloodCast Notification System",
            body="This is a test notification to verify delivery is working.",
            priority=NotificationPriority.LOW,
            kind=NotificationKind.TEST,
            metadata={"kind": NotificationKind.TEST.value},
        )
        return await self._submit("test", "test", task)

    async def cancel_for_location(self, location_key: str) -> int:
        """Cancel every tracked deferred task for a location. Returns count attempted."""
        pending = self._pending.pop(location_key, [])
        for item in pending:
            try:
                await self.sink.cancel(item.handle)
            except Exception as e:
                logger.warning(
                    "notification_cancel_failed",
                    location_key=location_key,
                    handle=item.handle,
                    error=str(e),
                )
        if pending:
            logger.info(
                "notifications_cancelled",
                location_key=location_key,
                count=len(pending),
            )
        return len(pending)

    async def cancel_all(self) -> int:
        total = 0
        for location_key in list(self._pending):
            total += await self.cancel_for_location(location_key)
        return total

    def reset_location(self, location_key: str) -> None:
        """Forget dedup state so the next qualifying alert always notifies."""
        self.dedup.forget(location_key)

    def reset_all(self) -> None:
        self.dedup.reset()

    def pending(self, location_key: str) -> list[ScheduledNotification]:
        return list(self._pending.get(location_key, []))

    async def _submit(
        self, location_key: str, alert_id: str, task: NotificationTask
    ) -> Optional[ScheduledNotification]:
        try:
            handle = await self.sink.submit(task)
        except Exception as e:
            error = NotificationSubmitError(alert_id, str(e), cause=e)
            logger.error(
                "notification_submit_failed",
                location_key=location_key,
                kind=task.kind.value,
                **error.to_dict(),
            )
            return None

        item = ScheduledNotification(
            handle=handle,
            location_key=location_key,
            alert_id=alert_id,
            task=task,
        )
        if task.trigger_at is not None:
            self._pending.setdefault(location_key, []).append(item)
        return item
