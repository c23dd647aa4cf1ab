"""
Tests for the Location Monitor.

Covers:
- Below threshold → no alert; above → one alert per key
- Consecutive ticks replace, never duplicate
- Fetch failure keeps the previous state
- Falling below threshold clears the alert and pending reminders
- No store write after stop_monitoring returns
- Last writer by fetch completion wins
- Restart replaces the session
- Alerts disabled skips ticks
- A hung fetch on one location does not block another
"""

import asyncio
import random

import pytest
import pytest_asyncio

from floodcast.alerting.schemas import AlertChange, Severity
from floodcast.exceptions import LocationNotMonitoredError, PredictionFetchError
from floodcast.service import FloodAlertService
from tests.conftest import (
    KLCC,
    PUCHONG,
    GatedPredictionProvider,
    ScriptedPredictionProvider,
    snapshot,
)


@pytest_asyncio.fixture
async def make_service(sink, test_settings):
    created = []

    def _make(provider) -> FloodAlertService:
        svc = FloodAlertService(provider, sink, settings=test_settings, rng=random.Random(7))
        created.append(svc)
        return svc

    yield _make
    for svc in created:
        await svc.close()


def _fetch_error() -> PredictionFetchError:
    return PredictionFetchError(KLCC.lat, KLCC.lng, "HTTP 503")


# ── Threshold ──────────────────────────────────────────────────────────


class TestThreshold:
    @pytest.mark.asyncio
    async def test_below_threshold_no_alert(self, make_service, sink):
        service = make_service(ScriptedPredictionProvider(snapshot(0.4)))
        session = await service.start_monitoring(KLCC)

        assert service.get_active_alert(KLCC) is None
        assert session.tick_count == 1
        assert sink.submitted == {}

    @pytest.mark.asyncio
    async def test_above_threshold_creates_alert(self, make_service, sink):
        service = make_service(ScriptedPredictionProvider(snapshot(0.7, 24)))
        await service.start_monitoring(KLCC)

        alert = service.get_active_alert(KLCC)
        assert alert is not None
        assert alert.severity == Severity.URGENT
        assert len(sink.submitted) == 2

    @pytest.mark.asyncio
    async def test_consecutive_ticks_replace(self, make_service, sink):
        service = make_service(ScriptedPredictionProvider(snapshot(0.7, 24)))
        await service.start_monitoring(KLCC)
        first = service.get_active_alert(KLCC)

        await service.refresh(KLCC)
        second = service.get_active_alert(KLCC)

        assert second.id != first.id
        assert service.list_active_alerts() == [second]
        # Unchanged content inside the cooldown is not resubmitted
        assert len(sink.submitted) == 2

    @pytest.mark.asyncio
    async def test_drop_below_threshold_clears(self, make_service, sink):
        service = make_service(ScriptedPredictionProvider(snapshot(0.7, 24), snapshot(0.3)))
        await service.start_monitoring(KLCC)
        pending = service.notifier.pending(str(KLCC.key))
        assert len(pending) == 1

        await service.refresh(KLCC)

        assert service.get_active_alert(KLCC) is None
        assert pending[0].handle in sink.cancelled
        assert service.history()[0].change == AlertChange.CLEARED


# ── Failures ───────────────────────────────────────────────────────────


class TestFetchFailure:
    @pytest.mark.asyncio
    async def test_failure_keeps_previous_alert(self, make_service):
        service = make_service(ScriptedPredictionProvider(snapshot(0.7), _fetch_error()))
        await service.start_monitoring(KLCC)
        before = service.get_active_alert(KLCC)

        await service.refresh(KLCC)

        assert service.get_active_alert(KLCC) is before
        session = service.monitor.get_session(KLCC.key)
        assert "HTTP 503" in session.last_error

    @pytest.mark.asyncio
    async def test_failure_with_no_alert_stays_empty(self, make_service):
        service = make_service(ScriptedPredictionProvider(_fetch_error()))
        await service.start_monitoring(KLCC)
        assert service.get_active_alert(KLCC) is None
        assert service.monitor.is_monitoring(KLCC.key)

    @pytest.mark.asyncio
    async def test_refresh_unmonitored_raises(self, make_service):
        service = make_service(ScriptedPredictionProvider(snapshot(0.7)))
        with pytest.raises(LocationNotMonitoredError):
            await service.refresh(KLCC)


# ── Stop / restart ─────────────────────────────────────────────────────


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_clears_alert_and_job(self, make_service, sink):
        service = make_service(ScriptedPredictionProvider(snapshot(0.7)))
        await service.start_monitoring(KLCC)
        assert service.monitor.scheduler.get_job(f"monitor:{KLCC.key}") is not None

        assert await service.stop_monitoring(KLCC) is True

        assert service.get_active_alert(KLCC) is None
        assert service.monitor.scheduler.get_job(f"monitor:{KLCC.key}") is None
        assert service.sessions() == []
        assert len(sink.active) == len(sink.submitted) - 1

    @pytest.mark.asyncio
    async def test_stop_unmonitored_returns_false(self, make_service):
        service = make_service(ScriptedPredictionProvider(snapshot(0.7)))
        assert await service.stop_monitoring(KLCC) is False

    @pytest.mark.asyncio
    async def test_no_write_after_stop(self, make_service):
        provider = GatedPredictionProvider(snapshot(0.9))
        service = make_service(provider)
        events = []
        service.subscribe(lambda key, alert: events.append(alert))

        start = asyncio.create_task(service.start_monitoring(KLCC))
        await provider.started[0].wait()

        await service.stop_monitoring(KLCC)
        provider.gates[0].set()
        await start

        assert service.get_active_alert(KLCC) is None
        assert events == []
        assert service.monitor.scheduler.get_job(f"monitor:{KLCC.key}") is None

    @pytest.mark.asyncio
    async def test_restart_replaces_session(self, make_service):
        service = make_service(ScriptedPredictionProvider(snapshot(0.7)))
        first = await service.start_monitoring(KLCC)
        second = await service.start_monitoring(KLCC)

        assert len(service.sessions()) == 1
        assert second.generation > first.generation
        assert len(service.list_active_alerts()) == 1

    @pytest.mark.asyncio
    async def test_stop_all(self, make_service):
        service = make_service(ScriptedPredictionProvider(snapshot(0.7)))
        await service.start_monitoring(KLCC)
        await service.start_monitoring(PUCHONG)

        assert await service.stop_all_monitoring() == 2
        assert service.list_active_alerts() == []
        assert service.sessions() == []


# ── Ordering / concurrency ─────────────────────────────────────────────


class TestOrdering:
    @pytest.mark.asyncio
    async def test_last_fetch_completion_wins(self, make_service):
        provider = GatedPredictionProvider(snapshot(0.65), snapshot(0.9), snapshot(0.7))
        provider.gates[0].set()
        service = make_service(provider)
        await service.start_monitoring(KLCC)

        slow = asyncio.create_task(service.refresh(KLCC))
        await provider.started[1].wait()
        fast = asyncio.create_task(service.refresh(KLCC))
        await provider.started[2].wait()

        provider.gates[2].set()
        await fast
        assert service.get_active_alert(KLCC).probability == 0.7

        provider.gates[1].set()
        await slow
        assert service.get_active_alert(KLCC).probability == 0.9
        assert len(service.list_active_alerts()) == 1

    @pytest.mark.asyncio
    async def test_hung_location_does_not_block_others(self, make_service):
        hung = asyncio.Event()

        class RoutingProvider:
            async def get_prediction(self, lat, lon):
                if lat == KLCC.lat:
                    await hung.wait()
                return snapshot(0.7)

        service = make_service(RoutingProvider())
        klcc = asyncio.create_task(service.start_monitoring(KLCC))
        await service.start_monitoring(PUCHONG)

        assert service.get_active_alert(PUCHONG) is not None
        assert service.get_active_alert(KLCC) is None

        hung.set()
        await klcc
        assert service.get_active_alert(KLCC) is not None


# ── Enabled flag ───────────────────────────────────────────────────────


class TestAlertsDisabled:
    @pytest.mark.asyncio
    async def test_disabled_skips_fetch(self, make_service):
        provider = ScriptedPredictionProvider(snapshot(0.9))
        service = make_service(provider)
        service.set_alerts_enabled(False)

        await service.start_monitoring(KLCC)

        assert provider.calls == []
        assert service.get_active_alert(KLCC) is None

    @pytest.mark.asyncio
    async def test_disabled_keeps_existing_alert(self, make_service):
        provider = ScriptedPredictionProvider(snapshot(0.9))
        service = make_service(provider)
        await service.start_monitoring(KLCC)
        alert = service.get_active_alert(KLCC)

        service.set_alerts_enabled(False)
        await service.refresh(KLCC)

        assert len(provider.calls) == 1
        assert service.get_active_alert(KLCC) is alert
