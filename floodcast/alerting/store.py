"""
Alert Store — at most one live alert per location key.

Single source of truth read by subscribers. Every successful upsert/clear
publishes to the event bus before returning, so no subscriber can observe
a stale read after a confirmed write.

Writes are plain synchronous dict operations on the event loop thread:
different keys never contend, and writers that must serialize a
read-modify-write sequence for one key use key_lock(). A key's lock lives
only while someone holds or waits on it, or while the key has a live alert.
"""

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import structlog

from floodcast.alerting.events import AlertEventBus
from floodcast.alerting.schemas import (
    AlertChange,
    AlertHistoryEntry,
    FloodAlert,
    LocationKey,
)

logger = structlog.get_logger(__name__)


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        # holders + waiters
        self.users = 0


class AlertStore:
    """In-memory alert map with a bounded transition history."""

    def __init__(self, bus: AlertEventBus, history_limit: int = 200):
        self._bus = bus
        self._alerts: dict[LocationKey, FloodAlert] = {}
        self._locks: dict[LocationKey, _KeyLock] = {}
        self._history: deque[AlertHistoryEntry] = deque(maxlen=history_limit)

    @asynccontextmanager
    async def key_lock(self, key: LocationKey) -> AsyncIterator[None]:
        """Hold the per-key lock. Unrelated keys never share a lock."""
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            self.forget(key)

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    def upsert(self, key: LocationKey, alert: FloodAlert) -> Optional[FloodAlert]:
        """Set the live alert for a key. Returns the alert it replaced, if any."""
        previous = self._alerts.get(key)
        self._alerts[key] = alert
        self._record(key, AlertChange.SET, alert)
        logger.info(
            "alert_stored",
            location_key=str(key),
            alert_id=alert.id,
            severity=alert.severity.value,
            risk_level=alert.risk_level.value,
            replaced=previous.id if previous else None,
        )
        self._bus.publish(str(key), alert)
        return previous

    def clear(self, key: LocationKey, change: AlertChange = AlertChange.CLEARED) -> Optional[FloodAlert]:
        """
        Remove the live alert for a key. Idempotent: clearing an empty key
        returns None and publishes nothing.
        """
        previous = self._alerts.pop(key, None)
        if previous is None:
            return None
        self._record(key, change, previous)
        logger.info(
            "alert_removed",
            location_key=str(key),
            alert_id=previous.id,
            change=change.value,
        )
        self._bus.publish(str(key), None)
        return previous

    def get(self, key: LocationKey) -> Optional[FloodAlert]:
        return self._alerts.get(key)

    def list_all(self) -> list[FloodAlert]:
        return list(self._alerts.values())

    def keys(self) -> list[LocationKey]:
        return list(self._alerts.keys())

    def history(self, limit: Optional[int] = None) -> list[AlertHistoryEntry]:
        """Most recent transitions first."""
        entries = list(reversed(self._history))
        return entries[:limit] if limit is not None else entries

    def forget(self, key: LocationKey) -> None:
        """Drop the per-key lock when nobody uses it and the key has no live alert."""
        entry = self._locks.get(key)
        if entry is not None and entry.users == 0 and key not in self._alerts:
            del self._locks[key]

    def _record(self, key: LocationKey, change: AlertChange, alert: FloodAlert) -> None:
        self._history.append(
            AlertHistoryEntry(
                location_key=str(key),
                change=change,
                alert_id=alert.id,
                severity=alert.severity,
                recorded_at=datetime.now(timezone.utc),
            )
        )
