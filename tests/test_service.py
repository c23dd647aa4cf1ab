"""
Tests for the FloodAlertService control surface.

Covers:
- Dismiss (history, pending cancellation, monitoring continues)
- Alert settings readout and threshold validation
- Subscribers see every store mutation
- stop_all_monitoring also clears synthetic alerts
- Test notification and service wiring from settings
- Configured monitor locations
- Test predictions through the live path, random scenarios
- Per-key locks do not outlive their locations
"""

import pytest

from floodcast.alerting.schemas import (
    AlertChange,
    MonitoredLocation,
    NotificationKind,
    Severity,
)
from floodcast.alerting.sinks import InMemoryNotificationSink, WebhookNotificationSink
from floodcast.config import Settings
from floodcast.monitor_main import load_locations
from floodcast.service import build_service
from floodcast.services.prediction_client import HttpPredictionProvider
from tests.conftest import KLCC, PUCHONG


class TestDismiss:
    @pytest.mark.asyncio
    async def test_dismiss_removes_alert_and_reminders(self, service, sink):
        await service.start_monitoring(KLCC)
        reminder = service.notifier.pending(str(KLCC.key))[0]

        assert await service.dismiss_alert(KLCC) is True

        assert service.get_active_alert(KLCC) is None
        assert reminder.handle in sink.cancelled
        assert service.history()[0].change == AlertChange.DISMISSED
        assert service.monitor.is_monitoring(KLCC.key)

    @pytest.mark.asyncio
    async def test_dismiss_without_alert(self, service):
        assert await service.dismiss_alert(KLCC) is False

    @pytest.mark.asyncio
    async def test_next_tick_after_dismiss_notifies_again(self, service, sink):
        await service.start_monitoring(KLCC)
        await service.dismiss_alert(KLCC)
        before = len(sink.submitted)

        await service.refresh(KLCC)

        assert service.get_active_alert(KLCC) is not None
        assert len(sink.submitted) == before + 2


class TestSettings:
    def test_defaults(self, service):
        assert service.get_alert_settings() == {
            "enabled": True,
            "threshold": 0.6,
            "threshold_percent": 60,
            "min": 0.5,
            "max": 0.95,
        }

    def test_rejected_threshold_is_noop(self, service):
        assert service.set_alert_trigger_threshold(0.3) is False
        assert service.get_alert_settings()["threshold"] == 0.6

    @pytest.mark.asyncio
    async def test_threshold_applies_to_next_tick(self, service):
        assert service.set_alert_trigger_threshold(0.8) is True
        await service.start_monitoring(KLCC)
        assert service.get_active_alert(KLCC) is None

    def test_enabled_flag(self, service):
        service.set_alerts_enabled(False)
        assert service.get_alert_settings()["enabled"] is False


class TestSubscribers:
    @pytest.mark.asyncio
    async def test_subscriber_sees_set_and_clear(self, service):
        events = []
        fn = service.subscribe(lambda key, alert: events.append((key, alert)))

        await service.start_monitoring(KLCC)
        await service.stop_monitoring(KLCC)

        assert [alert is None for _, alert in events] == [False, True]
        assert all(key == str(KLCC.key) for key, _ in events)

        service.unsubscribe(fn)
        await service.generate_synthetic_alert(0.9, 0, PUCHONG)
        assert len(events) == 2


class TestStopAll:
    @pytest.mark.asyncio
    async def test_clears_synthetic_alerts(self, service, sink):
        await service.start_monitoring(KLCC)
        await service.generate_synthetic_alert(0.7, 24, PUCHONG)
        assert len(service.list_active_alerts()) == 2

        assert await service.stop_all_monitoring() == 1

        assert service.list_active_alerts() == []
        assert service.notifier.pending(str(PUCHONG.key)) == []
        assert len(sink.active) == len(sink.submitted) - 2
        assert service.store.lock_count == 0
        assert service.notifier.dedup.get_daily_count(str(KLCC.key)) == 0


class TestTestNotification:
    @pytest.mark.asyncio
    async def test_single_immediate_task(self, service, sink):
        result = await service.send_test_notification()
        assert result.task.kind == NotificationKind.TEST
        assert list(sink.submitted) == [result.handle]


class TestBuildService:
    @pytest.mark.asyncio
    async def test_in_memory_sink_without_webhook(self):
        svc = build_service(Settings(alert_webhook_url=""))
        try:
            assert isinstance(svc.sink, InMemoryNotificationSink)
            assert isinstance(svc.monitor.provider, HttpPredictionProvider)
        finally:
            await svc.close()

    @pytest.mark.asyncio
    async def test_webhook_sink_when_configured(self):
        svc = build_service(Settings(alert_webhook_url="https://hooks.test/flood"))
        try:
            assert isinstance(svc.sink, WebhookNotificationSink)
        finally:
            await svc.close()


class TestLoadLocations:
    def test_invalid_entries_skipped(self):
        locations = load_locations([
            {"name": "KLCC", "lat": 3.1579, "lng": 101.7116},
            {"name": "Nowhere", "lat": 120, "lng": 0},
            {"name": "Missing"},
        ])
        assert [loc.name for loc in locations] == ["KLCC"]


class TestTestPrediction:
    @pytest.mark.asyncio
    async def test_countdown_is_quarter_of_timeframe(self, service, provider):
        alert = await service.trigger_test_prediction_alert(0.65, KLCC)

        assert alert.countdown_ms == 3 * 60 * 60 * 1000
        assert alert.severity == Severity.URGENT
        assert alert.is_synthetic is False
        assert alert.prediction_snapshot.model_version == "test"
        assert service.get_active_alert(KLCC) == alert
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_below_threshold_no_alert(self, service, sink):
        await service.trigger_test_prediction_alert(0.9, KLCC)

        assert await service.trigger_test_prediction_alert(0.4, KLCC) is None
        assert service.get_active_alert(KLCC) is None
        assert service.notifier.pending(str(KLCC.key)) == []

    @pytest.mark.asyncio
    async def test_disabled_alerts_skip(self, service):
        service.set_alerts_enabled(False)
        assert await service.trigger_test_prediction_alert(0.9, KLCC) is None

    @pytest.mark.asyncio
    async def test_invalid_probability_rejected(self, service):
        with pytest.raises(ValueError):
            await service.trigger_test_prediction_alert(65, KLCC)


class TestRandomScenario:
    @pytest.mark.asyncio
    async def test_creates_synthetic_alert(self, service):
        alert = await service.trigger_random_scenario()
        assert alert is not None
        assert alert.is_synthetic is True
        assert service.list_active_alerts() == [alert]


class TestLockLifetime:
    @pytest.mark.asyncio
    async def test_dismiss_on_unknown_locations_keeps_no_locks(self, service):
        for i in range(500):
            location = MonitoredLocation(name=f"loc-{i}", lat=-10.0 + i / 1000, lng=100.0)
            assert await service.dismiss_alert(location) is False
        assert service.store.lock_count == 0

    @pytest.mark.asyncio
    async def test_lock_kept_only_while_alert_live(self, service):
        await service.start_monitoring(KLCC)
        assert service.store.lock_count == 1

        await service.dismiss_alert(KLCC)
        assert service.store.lock_count == 0
        assert service.monitor.is_monitoring(KLCC.key)

        await service.refresh(KLCC)
        assert service.get_active_alert(KLCC) is not None
