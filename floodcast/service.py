"""
Flood Alert Service — the control surface over the alerting core.

Wires one event bus, store, classifier, builder, notification scheduler,
location monitor and synthetic generator together. Callers (HTTP API,
headless monitor, tests) talk only to this class.
"""

import random
from typing import Optional, Union

import structlog

from floodcast.alerting.builder import AlertBuilder
from floodcast.alerting.classifier import AlertTrigger, FloodClassifier
from floodcast.alerting.dedup import NotificationDedup
from floodcast.alerting.events import AlertEventBus, AlertSubscriber
from floodcast.alerting.monitor import LocationMonitor, PredictionProvider
from floodcast.alerting.notifications import (
    NotificationScheduler,
    NotificationSink,
    NotificationTiers,
)
from floodcast.alerting.schemas import (
    AlertChange,
    AlertHistoryEntry,
    FloodAlert,
    LocationKey,
    MonitoredLocation,
    MonitoringSession,
    PredictionSnapshot,
    ScheduledNotification,
)
from floodcast.alerting.sinks import InMemoryNotificationSink, WebhookNotificationSink
from floodcast.alerting.store import AlertStore
from floodcast.alerting.synthetic import SyntheticAlertGenerator
from floodcast.config import Settings
from floodcast.services.prediction_client import HttpPredictionProvider

logger = structlog.get_logger(__name__)

LocationRef = Union[MonitoredLocation, LocationKey]

# fixed test prediction: light rain, 12h timeframe, 4h duration
TEST_PREDICTION_TIMEFRAME_HOURS = 12.0
TEST_PREDICTION_DURATION_HOURS = 4.0
TEST_PREDICTION_RAINFALL_24H = 15.0
TEST_PREDICTION_CURRENT_RAINFALL = 2.5


def _key(location: LocationRef) -> LocationKey:
    return location.key if isinstance(location, MonitoredLocation) else location


class FloodAlertService:
    """Owns the alerting components for one process."""

    def __init__(
        self,
        provider: PredictionProvider,
        sink: NotificationSink,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or Settings()
        s = self.settings

        self.sink = sink
        self.bus = AlertEventBus()
        self.store = AlertStore(self.bus, history_limit=s.alert_history_limit)
        self.trigger = AlertTrigger.from_settings(s)
        self.classifier = FloodClassifier.from_settings(s)
        self.builder = AlertBuilder(
            self.classifier,
            immediate_window_hours=s.immediate_window_hours,
            default_timeframe_hours=s.default_timeframe_hours,
        )
        self.notifier = NotificationScheduler(
            sink,
            tiers=NotificationTiers.from_settings(s),
            dedup=NotificationDedup(
                cooldown_minutes=s.notification_cooldown_minutes,
                max_per_day=s.max_notifications_per_day,
            ),
        )
        self.monitor = LocationMonitor(
            provider,
            self.store,
            self.builder,
            self.notifier,
            self.trigger,
            interval_seconds=s.monitor_interval_seconds,
        )
        self.synthetic = SyntheticAlertGenerator(
            self.builder,
            self.store,
            self.notifier,
            self.trigger,
            rng=rng,
        )

    # ── Monitoring ────────────────────────────────────────────────────

    async def start_monitoring(self, location: MonitoredLocation) -> MonitoringSession:
        return await self.monitor.start_monitoring(location)

    async def stop_monitoring(self, location: LocationRef) -> bool:
        return await self.monitor.stop_monitoring(_key(location))

    async def stop_all_monitoring(self) -> int:
        """Stop every session, then clear any remaining (e.g. synthetic) alerts."""
        stopped = await self.monitor.stop_all()
        for key in self.store.keys():
            async with self.store.key_lock(key):
                self.store.clear(key)
        await self.notifier.cancel_all()
        self.notifier.reset_all()
        logger.info("all_monitoring_stopped", sessions=stopped)
        return stopped

    async def refresh(self, location: LocationRef) -> Optional[FloodAlert]:
        return await self.monitor.refresh(_key(location))

    def sessions(self) -> list[MonitoringSession]:
        return self.monitor.sessions()

    # ── Alerts ────────────────────────────────────────────────────────

    async def dismiss_alert(self, location: LocationRef) -> bool:
        """
        Remove the live alert and cancel its pending notifications.

        Monitoring continues; the next qualifying tick creates a new alert.
        """
        key = _key(location)
        async with self.store.key_lock(key):
            removed = self.store.clear(key, change=AlertChange.DISMISSED)
            await self.notifier.cancel_for_location(str(key))
            self.notifier.reset_location(str(key))
        logger.info("alert_dismissed", location_key=str(key), had_alert=removed is not None)
        return removed is not None

    def get_active_alert(self, location: LocationRef) -> Optional[FloodAlert]:
        return self.store.get(_key(location))

    def list_active_alerts(self) -> list[FloodAlert]:
        return self.store.list_all()

    def history(self, limit: Optional[int] = None) -> list[AlertHistoryEntry]:
        return self.store.history(limit)

    # ── Settings ──────────────────────────────────────────────────────

    def set_alert_trigger_threshold(self, value: float) -> bool:
        return self.trigger.set_threshold(value)

    def set_alerts_enabled(self, enabled: bool) -> None:
        self.trigger.set_enabled(enabled)

    def get_alert_settings(self) -> dict:
        return self.trigger.snapshot()

    # ── Synthetic / testing ───────────────────────────────────────────

    async def generate_synthetic_alert(
        self,
        probability: float,
        lead_time_hours: float,
        location: MonitoredLocation,
    ) -> Optional[FloodAlert]:
        return await self.synthetic.generate(probability, lead_time_hours, location)

    async def trigger_scenario(self, key: str) -> Optional[FloodAlert]:
        return await self.synthetic.trigger_scenario(key)

    async def trigger_random_scenario(self) -> Optional[FloodAlert]:
        return await self.synthetic.trigger_random()

    async def trigger_test_prediction_alert(
        self,
        probability: float,
        location: MonitoredLocation,
    ) -> Optional[FloodAlert]:
        """
        Push a fixed test prediction through the live path.

        Same builder, gate and countdown basis as a monitoring tick, so the
        countdown is a preparation window inside the 12h timeframe. The
        prediction provider is not called.
        """
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"probability must be in [0, 1], got {probability}")
        key = location.key
        if not self.trigger.enabled:
            logger.info("test_prediction_skipped", location_key=str(key), reason="alerts_disabled")
            return None

        prediction = PredictionSnapshot(
            probability=probability,
            timeframe_hours=TEST_PREDICTION_TIMEFRAME_HOURS,
            confidence="high",
            rainfall_24h=TEST_PREDICTION_RAINFALL_24H,
            current_temp=28.0,
            humidity=85.0,
            current_rainfall=TEST_PREDICTION_CURRENT_RAINFALL,
            expected_duration_hours=TEST_PREDICTION_DURATION_HOURS,
            model_version="test",
        )
        async with self.store.key_lock(key):
            if not self.trigger.qualifies(probability):
                if self.store.clear(key) is not None:
                    await self.notifier.cancel_for_location(str(key))
                    self.notifier.reset_location(str(key))
                logger.info(
                    "test_prediction_below_threshold",
                    location_key=str(key),
                    probability=probability,
                    threshold=self.trigger.threshold,
                )
                return None

            alert = self.builder.from_prediction(location, prediction)
            previous = self.store.upsert(key, alert)
            await self.notifier.schedule(alert, previous)

        logger.info(
            "test_prediction_alert_generated",
            location_key=str(key),
            alert_id=alert.id,
            probability=probability,
            severity=alert.severity.value,
        )
        return alert

    async def send_test_notification(self) -> Optional[ScheduledNotification]:
        return await self.notifier.send_test_notification()

    # ── Subscribers ───────────────────────────────────────────────────

    def subscribe(self, fn: AlertSubscriber) -> AlertSubscriber:
        return self.bus.subscribe(fn)

    def unsubscribe(self, fn: AlertSubscriber) -> None:
        self.bus.unsubscribe(fn)

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def close(self) -> None:
        await self.stop_all_monitoring()
        await self.monitor.close()
        close_sink = getattr(self.sink, "close", None)
        if close_sink is not None:
            await close_sink()
        logger.info("flood_alert_service_closed")


def build_service(settings: Settings) -> FloodAlertService:
    """Production wiring: HTTP prediction provider and webhook (or in-memory) sink."""
    provider = HttpPredictionProvider(
        base_url=settings.prediction_api_url,
        api_key=settings.prediction_api_key,
        timeout=settings.prediction_timeout_seconds,
    )
    if settings.alert_webhook_url:
        sink: NotificationSink = WebhookNotificationSink(
            settings.alert_webhook_url,
            timeout=settings.webhook_timeout_seconds,
        )
    else:
        logger.info("webhook_not_configured", fallback="in_memory")
        sink = InMemoryNotificationSink()
    return FloodAlertService(provider, sink, settings=settings)
