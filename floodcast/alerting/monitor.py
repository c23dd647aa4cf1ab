"""
Location Monitor — periodic prediction polling per monitored location.

One monitoring session per location key. Each session is an APScheduler
interval job; a tick fetches a prediction, then (under the store's key
lock) either builds and stores a new alert or clears the existing one.

Stop safety:
- Every session carries a generation number. stop / restart invalidate
  the current generation synchronously, before any await.
- A tick re-checks its generation after the fetch returns and again
  under the key lock, so a tick whose fetch was in flight during stop
  never writes.
- The fetch runs outside the lock; ticks for the same key are applied
  in fetch-completion order.

A failed fetch changes nothing: the previous alert (or no alert) stays.
"""

import itertools
from datetime import datetime, timezone
from typing import Optional, Protocol, Union

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from floodcast.alerting.builder import AlertBuilder
from floodcast.alerting.classifier import AlertTrigger
from floodcast.alerting.notifications import NotificationScheduler
from floodcast.alerting.schemas import (
    FloodAlert,
    LocationKey,
    MonitoredLocation,
    MonitoringSession,
    PredictionSnapshot,
)
from floodcast.alerting.store import AlertStore
from floodcast.exceptions import LocationNotMonitoredError

logger = structlog.get_logger(__name__)


class PredictionProvider(Protocol):
    """Anything that can produce a prediction for a coordinate."""

    async def get_prediction(self, lat: float, lon: float) -> PredictionSnapshot:
        ...


class LocationMonitor:
    """Owns monitoring sessions and the interval jobs that drive them."""

    def __init__(
        self,
        provider: PredictionProvider,
        store: AlertStore,
        builder: AlertBuilder,
        notifier: NotificationScheduler,
        trigger: AlertTrigger,
        interval_seconds: float = 300.0,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.provider = provider
        self.store = store
        self.builder = builder
        self.notifier = notifier
        self.trigger = trigger
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._owns_scheduler = scheduler is None
        self._sessions: dict[LocationKey, MonitoringSession] = {}
        self._generations = itertools.count(1)

    # ── Session lifecycle ─────────────────────────────────────────────

    async def start_monitoring(self, location: MonitoredLocation) -> MonitoringSession:
        """
        Start (or restart) monitoring a location.

        Runs one tick immediately, then every interval_seconds. Restarting
        an already-monitored location replaces its session; the stored
        alert is kept until the new session's first tick decides.
        """
        key = location.key
        if key in self._sessions:
            self._remove_job(key)
            logger.info("monitoring_session_replaced", location_key=str(key))

        session = MonitoringSession(
            location_key=str(key),
            location=location,
            started_at=datetime.now(timezone.utc),
            generation=next(self._generations),
        )
        self._sessions[key] = session
        logger.info(
            "monitoring_started",
            location_key=str(key),
            name=location.name,
            interval_seconds=self.interval_seconds,
        )

        await self.tick(key, session.generation)

        if self._is_current(key, session.generation):
            self._ensure_started()
            self.scheduler.add_job(
                self._scheduled_tick,
                IntervalTrigger(seconds=self.interval_seconds),
                args=[key, session.generation],
                id=self._job_id(key),
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        return session

    async def stop_monitoring(self, target: Union[MonitoredLocation, LocationKey]) -> bool:
        """
        Stop monitoring a location and clear its alert.

        No store write for this key happens after this returns. Returns
        False when the location was not being monitored (its alert, if
        any, is still cleared).
        """
        key = target.key if isinstance(target, MonitoredLocation) else target
        session = self._sessions.pop(key, None)
        self._remove_job(key)
        if session is not None:
            session.active = False

        async with self.store.key_lock(key):
            self.store.clear(key)
            await self.notifier.cancel_for_location(str(key))
            self.notifier.reset_location(str(key))

        logger.info(
            "monitoring_stopped",
            location_key=str(key),
            was_monitored=session is not None,
        )
        return session is not None

    async def stop_all(self) -> int:
        keys = list(self._sessions)
        for key in keys:
            await self.stop_monitoring(key)
        return len(keys)

    async def refresh(self, key: LocationKey) -> Optional[FloodAlert]:
        """Run one out-of-band tick for a monitored location."""
        session = self.get_session(key)
        return await self.tick(key, session.generation)

    def get_session(self, key: LocationKey) -> MonitoringSession:
        session = self._sessions.get(key)
        if session is None:
            raise LocationNotMonitoredError(str(key))
        return session

    def sessions(self) -> list[MonitoringSession]:
        return list(self._sessions.values())

    def is_monitoring(self, key: LocationKey) -> bool:
        return key in self._sessions

    async def close(self) -> None:
        await self.stop_all()
        if self._owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    # ── Tick ──────────────────────────────────────────────────────────

    async def tick(self, key: LocationKey, generation: int) -> Optional[FloodAlert]:
        """
        One evaluation for one location.

        Returns the alert now stored for the key (None when cleared or
        when the tick was discarded).
        """
        session = self._sessions.get(key)
        if session is None or session.generation != generation:
            return None

        if not self.trigger.enabled:
            logger.debug("monitoring_tick_skipped", location_key=str(key), reason="alerts_disabled")
            return self.store.get(key)

        try:
            prediction = await self.provider.get_prediction(key.lat, key.lng)
        except Exception as e:
            session.last_error = str(e)
            logger.warning(
                "prediction_fetch_failed",
                location_key=str(key),
                error=str(e),
            )
            return self.store.get(key)

        if not self._is_current(key, generation):
            logger.debug("monitoring_tick_discarded", location_key=str(key), generation=generation)
            return None

        async with self.store.key_lock(key):
            if not self._is_current(key, generation):
                logger.debug("monitoring_tick_discarded", location_key=str(key), generation=generation)
                return None

            session.last_tick_at = datetime.now(timezone.utc)
            session.tick_count += 1
            session.last_error = None

            if not self.trigger.qualifies(prediction.probability):
                if self.store.clear(key) is not None:
                    await self.notifier.cancel_for_location(str(key))
                    self.notifier.reset_location(str(key))
                logger.debug(
                    "monitoring_below_threshold",
                    location_key=str(key),
                    probability=prediction.probability,
                    threshold=self.trigger.threshold,
                )
                return None

            alert = self.builder.from_prediction(session.location, prediction)
            previous = self.store.upsert(key, alert)
            await self.notifier.schedule(alert, previous)
            return alert

    async def _scheduled_tick(self, key: LocationKey, generation: int) -> None:
        try:
            await self.tick(key, generation)
        except Exception as e:
            logger.error("monitoring_tick_failed", location_key=str(key), error=str(e))

    # ── Internals ─────────────────────────────────────────────────────

    def _is_current(self, key: LocationKey, generation: int) -> bool:
        session = self._sessions.get(key)
        return session is not None and session.generation == generation

    @staticmethod
    def _job_id(key: LocationKey) -> str:
        return f"monitor:{key}"

    def _remove_job(self, key: LocationKey) -> None:
        try:
            self.scheduler.remove_job(self._job_id(key))
        except JobLookupError:
            pass

    def _ensure_started(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
