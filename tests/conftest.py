"""
Test fixtures for FloodCast.

Provides:
- Scripted / gated / failing prediction providers
- In-memory and failing notification sinks
- A FloodAlertService wired to those fakes (closed after each test)
- Alert factories built through the real AlertBuilder
"""

import asyncio
import random
from datetime import datetime, timezone
from typing import Optional, Union

import pytest
import pytest_asyncio

from floodcast.alerting.builder import AlertBuilder
from floodcast.alerting.classifier import FloodClassifier
from floodcast.alerting.schemas import (
    CountdownBasis,
    CurrentConditions,
    FloodAlert,
    MonitoredLocation,
    NotificationTask,
    PredictionSnapshot,
)
from floodcast.alerting.sinks import InMemoryNotificationSink
from floodcast.config import Settings
from floodcast.service import FloodAlertService

KLCC = MonitoredLocation(name="KLCC, Kuala Lumpur", lat=3.1578, lng=101.7123)
PUCHONG = MonitoredLocation(name="Puchong, Selangor", lat=3.1390, lng=101.6869)


def snapshot(probability: float, timeframe_hours: Optional[float] = 24.0, **kwargs) -> PredictionSnapshot:
    return PredictionSnapshot(
        probability=probability,
        timeframe_hours=timeframe_hours,
        confidence=0.8,
        rainfall_24h=kwargs.pop("rainfall_24h", 40.0),
        model_version="test",
        **kwargs,
    )


# ── Prediction providers ───────────────────────────────────────────────


class ScriptedPredictionProvider:
    """Returns scripted results in order; the last one repeats."""

    def __init__(self, *results: Union[PredictionSnapshot, Exception]):
        self.results = list(results)
        self.calls: list[tuple[float, float]] = []

    async def get_prediction(self, lat: float, lon: float) -> PredictionSnapshot:
        self.calls.append((lat, lon))
        index = min(len(self.calls) - 1, len(self.results) - 1)
        result = self.results[index]
        if isinstance(result, Exception):
            raise result
        return result


class GatedPredictionProvider:
    """
    Call i blocks until gates[i] is set, then returns results[i].

    started[i] is set as soon as call i begins, so a test can act while
    the fetch is in flight.
    """

    def __init__(self, *results: Union[PredictionSnapshot, Exception]):
        self.results = list(results)
        self.gates = [asyncio.Event() for _ in results]
        self.started = [asyncio.Event() for _ in results]
        self.calls = 0

    async def get_prediction(self, lat: float, lon: float) -> PredictionSnapshot:
        index = self.calls
        self.calls += 1
        self.started[index].set()
        await self.gates[index].wait()
        result = self.results[index]
        if isinstance(result, Exception):
            raise result
        return result


# ── Notification sinks ─────────────────────────────────────────────────


class FailingNotificationSink:
    """Rejects every submission."""

    def __init__(self):
        self.attempts = 0

    async def submit(self, task: NotificationTask) -> str:
        self.attempts += 1
        raise ConnectionError("sink unavailable")

    async def cancel(self, handle: str) -> None:
        return None


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def test_settings() -> Settings:
    # Long interval: only explicit ticks run during a test
    return Settings(monitor_interval_seconds=3600, alert_webhook_url="")


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def provider() -> ScriptedPredictionProvider:
    return ScriptedPredictionProvider(snapshot(0.7))


@pytest_asyncio.fixture
async def service(provider, sink, test_settings):
    svc = FloodAlertService(provider, sink, settings=test_settings, rng=random.Random(42))
    yield svc
    await svc.close()


@pytest.fixture
def builder() -> AlertBuilder:
    return AlertBuilder(FloodClassifier())


@pytest.fixture
def make_alert(builder):
    """
    Build an alert with literal lead time (onset basis).

    lead 0 → immediate, 4 → urgent, 10 → warning, 20 → advisory.
    """

    def _make_alert(
        probability: float = 0.7,
        lead_time_hours: float = 4.0,
        location: MonitoredLocation = KLCC,
        now: Optional[datetime] = None,
    ) -> FloodAlert:
        return builder.build(
            location=location,
            prediction=snapshot(probability, lead_time_hours),
            lead_time_hours=lead_time_hours,
            basis=CountdownBasis.ONSET,
            conditions=CurrentConditions(),
            expected_rainfall=30.0,
            window_start_hours=lead_time_hours,
            window_hours=4.0,
            now=now or datetime.now(timezone.utc),
        )

    return _make_alert
