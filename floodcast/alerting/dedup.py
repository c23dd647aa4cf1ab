"""
Notification Deduplication & Cooldown — prevent notification storms.

A monitored location is re-evaluated every few minutes and each qualifying
tick replaces the live alert. Without dedup every replacement would
resubmit the full notification tier.

Strategies:
1. Content dedup: same (location, severity, risk level) within the
   cooldown window → don't resubmit
2. Daily limit: max N submissions per location per day

All state is in-memory. Clearing a location resets its state so a fresh
threshold crossing always notifies.
"""

import hashlib
from datetime import datetime, timezone
from typing import Optional

import structlog

from floodcast.alerting.schemas import FloodAlert

logger = structlog.get_logger(__name__)


class NotificationDedup:
    """Tracks what was last notified per location key."""

    def __init__(self, cooldown_minutes: float = 30.0, max_per_day: int = 48):
        self.cooldown_minutes = cooldown_minutes
        self.max_per_day = max_per_day
        # location_key → (fingerprint, last submit time)
        self._last_sent: dict[str, tuple[str, datetime]] = {}
        # location_key → submissions today
        self._daily_counts: dict[str, int] = {}
        self._count_date = None

    @staticmethod
    def fingerprint(alert: FloodAlert) -> str:
        """Same location + severity + risk level → same fingerprint."""
        content = f"{alert.location_key}|{alert.severity.value}|{alert.risk_level.value}"
        return hashlib.sha256(content.encode()).hexdigest()

    def should_suppress(
        self, alert: FloodAlert, now: Optional[datetime] = None
    ) -> tuple[bool, str]:
        """
        Check whether notifying for this alert would be a duplicate.

        Returns:
            (should_suppress, reason)
        """
        now = now or datetime.now(timezone.utc)
        self._maybe_reset_daily(now)

        last = self._last_sent.get(alert.location_key)
        if last is not None:
            last_fp, last_time = last
            elapsed = (now - last_time).total_seconds() / 60.0
            if last_fp == self.fingerprint(alert) and elapsed < self.cooldown_minutes:
                logger.debug(
                    "notification_suppressed_duplicate",
                    location_key=alert.location_key,
                    alert_id=alert.id,
                    elapsed_minutes=round(elapsed, 1),
                )
                return True, (
                    f"Duplicate content: {alert.severity.value}/{alert.risk_level.value} "
                    f"already notified {elapsed:.0f}m ago"
                )

        daily_count = self._daily_counts.get(alert.location_key, 0)
        if daily_count >= self.max_per_day:
            logger.debug(
                "notification_suppressed_daily_limit",
                location_key=alert.location_key,
                daily_count=daily_count,
            )
            return True, f"Daily limit reached: {daily_count}/{self.max_per_day}"

        return False, ""

    def record_sent(self, alert: FloodAlert, now: Optional[datetime] = None) -> None:
        now = now or datetime.now(timezone.utc)
        self._maybe_reset_daily(now)
        self._last_sent[alert.location_key] = (self.fingerprint(alert), now)
        self._daily_counts[alert.location_key] = (
            self._daily_counts.get(alert.location_key, 0) + 1
        )

    def forget(self, location_key: str) -> None:
        """Reset content dedup for one location (daily counts are kept)."""
        self._last_sent.pop(location_key, None)

    def get_daily_count(self, location_key: str, now: Optional[datetime] = None) -> int:
        self._maybe_reset_daily(now or datetime.now(timezone.utc))
        return self._daily_counts.get(location_key, 0)

    def reset(self) -> None:
        """Reset all state."""
        self._last_sent.clear()
        self._daily_counts.clear()
        self._count_date = None

    def _maybe_reset_daily(self, now: datetime) -> None:
        today = now.date()
        if self._count_date is None or self._count_date != today:
            self._daily_counts.clear()
            self._count_date = today
