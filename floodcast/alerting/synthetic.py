"""
Synthetic Alert Generator — exercise the alert pipeline without a live
prediction source.

Two entry points:
- generate(probability, lead_time_hours, location): weather and a flood
  period are synthesized from the probability (higher probability →
  heavier rain, higher humidity and river discharge, bounded randomness)
- trigger_scenario(key): a named demo preset with fixed weather

Both go through AlertBuilder.build with CountdownBasis.ONSET (lead time is
the literal time until onset) and then through the same store and
notification scheduler as the live monitor. The trigger threshold gates
synthetic alerts exactly like live ones.

Randomness comes from an injected random.Random so tests can seed it.
"""

import random
from dataclasses import dataclass, field
from typing import Optional

import structlog

from floodcast.alerting.builder import AlertBuilder
from floodcast.alerting.classifier import AlertTrigger
from floodcast.alerting.notifications import NotificationScheduler
from floodcast.alerting.schemas import (
    CountdownBasis,
    CurrentConditions,
    FloodAlert,
    MonitoredLocation,
    PredictionSnapshot,
    SyntheticWeather,
)
from floodcast.alerting.store import AlertStore

logger = structlog.get_logger(__name__)

WIND_DIRECTIONS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")

TEST_LOCATIONS: tuple[MonitoredLocation, ...] = (
    MonitoredLocation(name="Puchong, Selangor", lat=3.1390, lng=101.6869),
    MonitoredLocation(name="KLCC, Kuala Lumpur", lat=3.1578, lng=101.7123),
    MonitoredLocation(name="Johor Bahru, Johor", lat=1.4927, lng=103.7414),
    MonitoredLocation(name="Kota Kinabalu, Sabah", lat=5.9788, lng=116.0753),
    MonitoredLocation(name="Kuching, Sarawak", lat=1.5535, lng=110.3593),
    MonitoredLocation(name="Georgetown, Penang", lat=5.4141, lng=100.3288),
    MonitoredLocation(name="Kuantan, Pahang", lat=3.8077, lng=103.3260),
    MonitoredLocation(name="Kota Bharu, Kelantan", lat=6.1254, lng=102.2386),
)

# Lead times (hours) and probabilities (percent) offered to demo callers
TIMEFRAME_OPTIONS: tuple[int, ...] = (0, 2, 6, 12, 24, 48, 72)
PROBABILITY_OPTIONS: tuple[int, ...] = (10, 25, 40, 60, 75, 90)

# (min probability, precipitation, humidity, pressure, wind) as (base, spread)
_WEATHER_BANDS = (
    (0.90, (70, 30), (95, 5), (995, 10), (20, 15)),
    (0.75, (40, 30), (90, 8), (1000, 10), (15, 15)),
    (0.50, (15, 25), (80, 15), (1005, 15), (10, 15)),
    (0.25, (5, 15), (70, 20), (1008, 12), (5, 15)),
    (0.00, (0, 8), (60, 25), (1010, 10), (3, 12)),
)

# (min probability, duration hours, max precipitation) as (base, spread)
_PERIOD_BANDS = (
    (0.80, (6, 6), (60, 40)),
    (0.60, (4, 4), (40, 20)),
    (0.40, (2, 4), (20, 20)),
    (0.00, (1, 3), (10, 15)),
)

DEFAULT_PERIOD_HOURS = 4.0


@dataclass(frozen=True)
class FloodPeriod:
    """A predicted flood window, relative to now."""
    start_hours: float
    duration_hours: float
    max_precipitation: float


@dataclass(frozen=True)
class DemoScenario:
    key: str
    name: str
    description: str
    location: MonitoredLocation
    probability: float
    weather: SyntheticWeather
    periods: tuple[FloodPeriod, ...] = field(default_factory=tuple)

    @property
    def lead_time_hours(self) -> float:
        return self.periods[0].start_hours if self.periods else 0.0


def _scenario_weather(
    precipitation: float,
    temperature: float,
    humidity: float,
    wind_speed: float,
    wind_direction: str,
    pressure: float,
    precipitation_sum_24h: float,
    river_discharge: float,
    river_level: float,
) -> SyntheticWeather:
    return SyntheticWeather(
        precipitation=precipitation,
        temperature=temperature,
        humidity=humidity,
        pressure=pressure,
        wind_speed=wind_speed,
        wind_direction=wind_direction,
        precipitation_sum_24h=precipitation_sum_24h,
        river_discharge=river_discharge,
        river_level=river_level,
    )


DEMO_SCENARIOS: dict[str, DemoScenario] = {
    s.key: s
    for s in (
        DemoScenario(
            key="immediate_heavy_rain",
            name="Immediate Heavy Rain",
            description="Simulates heavy rainfall happening now",
            location=TEST_LOCATIONS[0],
            probability=0.9,
            weather=_scenario_weather(65, 26, 95, 15, "SW", 1005, 120, 350, 7.2),
        ),
        DemoScenario(
            key="urgent_6hour_warning",
            name="Urgent 6-Hour Warning",
            description="Heavy rain expected in 4 hours",
            location=TEST_LOCATIONS[1],
            probability=0.8,
            weather=_scenario_weather(8, 28, 85, 12, "W", 1008, 80, 280, 6.8),
            periods=(FloodPeriod(4, 4, 55),),
        ),
        DemoScenario(
            key="warning_12hour",
            name="Warning 12-Hour Forecast",
            description="Moderate rain expected in 10 hours",
            location=TEST_LOCATIONS[2],
            probability=0.7,
            weather=_scenario_weather(2, 29, 78, 8, "SE", 1012, 45, 220, 5.5),
            periods=(FloodPeriod(10, 4, 35),),
        ),
        DemoScenario(
            key="advisory_24hour",
            name="Advisory 24-Hour Watch",
            description="Light rain possible tomorrow morning",
            location=TEST_LOCATIONS[3],
            probability=0.6,
            weather=_scenario_weather(0.5, 30, 70, 6, "E", 1015, 25, 180, 4.8),
            periods=(FloodPeriod(20, 4, 15),),
        ),
        DemoScenario(
            key="multiple_periods",
            name="Multiple Rain Periods",
            description="Several rain periods over next 48 hours",
            location=TEST_LOCATIONS[4],
            probability=0.75,
            weather=_scenario_weather(5, 27, 88, 10, "NW", 1009, 95, 320, 6.5),
            periods=(FloodPeriod(6, 3, 25), FloodPeriod(18, 4, 45)),
        ),
    )
}


def _pick(bands, probability: float):
    for band in bands:
        if probability >= band[0]:
            return band[1:]
    return bands[-1][1:]


class SyntheticAlertGenerator:
    """Builds synthetic alerts through the live pipeline's downstream path."""

    def __init__(
        self,
        builder: AlertBuilder,
        store: AlertStore,
        notifier: NotificationScheduler,
        trigger: AlertTrigger,
        rng: Optional[random.Random] = None,
    ):
        self.builder = builder
        self.store = store
        self.notifier = notifier
        self.trigger = trigger
        self.rng = rng or random.Random()

    # ── Synthesis ─────────────────────────────────────────────────────

    def _spread(self, base_and_spread: tuple[float, float]) -> float:
        base, spread = base_and_spread
        return base + self.rng.random() * spread

    def generate_weather(self, probability: float, lead_time_hours: float) -> SyntheticWeather:
        """Current conditions scaled by probability; rain peaks when onset is near."""
        precip_band, humidity_band, pressure_band, wind_band = _pick(_WEATHER_BANDS, probability)
        precipitation = self._spread(precip_band)
        humidity = self._spread(humidity_band)
        pressure = self._spread(pressure_band)
        wind_speed = self._spread(wind_band)

        if lead_time_hours <= 0:
            precipitation *= 1.2
        elif lead_time_hours <= 2:
            precipitation *= 1.1
        else:
            precipitation *= 0.7

        return SyntheticWeather(
            precipitation=max(0.0, precipitation),
            temperature=25 + self.rng.random() * 8,
            humidity=min(100.0, humidity),
            pressure=pressure,
            wind_speed=wind_speed,
            wind_direction=self.rng.choice(WIND_DIRECTIONS),
            precipitation_sum_24h=precipitation * (2 + self.rng.random() * 4),
            river_discharge=100 + probability * 300 + self.rng.random() * 100,
            river_level=5 + probability * 4 + self.rng.random() * 2,
        )

    def generate_flood_period(
        self, probability: float, lead_time_hours: float
    ) -> Optional[FloodPeriod]:
        """A flood window starting at the lead time; None when flooding is now."""
        if lead_time_hours <= 0:
            return None
        duration_band, precip_band = _pick(_PERIOD_BANDS, probability)
        return FloodPeriod(
            start_hours=lead_time_hours,
            duration_hours=self._spread(duration_band),
            max_precipitation=self._spread(precip_band),
        )

    # ── Entry points ──────────────────────────────────────────────────

    async def generate(
        self,
        probability: float,
        lead_time_hours: float,
        location: MonitoredLocation,
    ) -> Optional[FloodAlert]:
        """
        Generate, store and notify one synthetic alert.

        Args:
            probability: Flood probability in [0, 1]
            lead_time_hours: Hours until onset; 0 means flooding now
            location: Where the alert is placed

        Returns:
            The stored alert, or None when the probability is below the
            trigger threshold (any existing alert for the key is cleared)
        """
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"probability must be in [0, 1], got {probability}")
        lead_time_hours = max(0.0, lead_time_hours)

        weather = self.generate_weather(probability, lead_time_hours)
        period = self.generate_flood_period(probability, lead_time_hours)
        periods = (period,) if period is not None else ()
        return await self._emit(location, probability, lead_time_hours, weather, periods)

    async def trigger_scenario(self, key: str) -> Optional[FloodAlert]:
        scenario = DEMO_SCENARIOS.get(key)
        if scenario is None:
            raise KeyError(f"Unknown demo scenario: {key}")
        logger.info(
            "synthetic_scenario_triggered",
            scenario=key,
            location=scenario.location.name,
        )
        return await self._emit(
            scenario.location,
            scenario.probability,
            scenario.lead_time_hours,
            scenario.weather,
            scenario.periods,
        )

    async def trigger_random(self) -> Optional[FloodAlert]:
        return await self.trigger_scenario(self.rng.choice(sorted(DEMO_SCENARIOS)))

    @staticmethod
    def list_scenarios() -> list[dict]:
        return [
            {
                "key": s.key,
                "name": s.name,
                "description": s.description,
                "location": s.location.name,
                "probability": s.probability,
                "lead_time_hours": s.lead_time_hours,
            }
            for s in DEMO_SCENARIOS.values()
        ]

    # ── Internals ─────────────────────────────────────────────────────

    async def _emit(
        self,
        location: MonitoredLocation,
        probability: float,
        lead_time_hours: float,
        weather: SyntheticWeather,
        periods: tuple[FloodPeriod, ...],
    ) -> Optional[FloodAlert]:
        key = location.key

        if not self.trigger.enabled:
            logger.info("synthetic_alert_skipped", location_key=str(key), reason="alerts_disabled")
            return None

        async with self.store.key_lock(key):
            if not self.trigger.qualifies(probability):
                if self.store.clear(key) is not None:
                    await self.notifier.cancel_for_location(str(key))
                    self.notifier.reset_location(str(key))
                logger.info(
                    "synthetic_alert_below_threshold",
                    location_key=str(key),
                    probability=probability,
                    threshold=self.trigger.threshold,
                )
                return None

            first = periods[0] if periods else None
            prediction = PredictionSnapshot(
                probability=probability,
                timeframe_hours=lead_time_hours,
                confidence=1.0,
                rainfall_24h=weather.precipitation_sum_24h,
                current_temp=weather.temperature,
                humidity=weather.humidity,
                current_rainfall=weather.precipitation,
                expected_duration_hours=first.duration_hours if first else None,
                model_version="synthetic",
            )
            alert = self.builder.build(
                location=location,
                prediction=prediction,
                lead_time_hours=lead_time_hours,
                basis=CountdownBasis.ONSET,
                conditions=CurrentConditions(
                    rainfall=weather.precipitation,
                    temperature=weather.temperature,
                    humidity=weather.humidity,
                ),
                expected_rainfall=first.max_precipitation if first else weather.precipitation,
                window_start_hours=lead_time_hours,
                window_hours=first.duration_hours if first else DEFAULT_PERIOD_HOURS,
                # synthesized rain never overrides a requested future lead time
                observed_rainfall=weather.precipitation if lead_time_hours <= 0 else None,
                is_synthetic=True,
                synthetic_weather=weather,
            )
            previous = self.store.upsert(key, alert)
            await self.notifier.schedule(alert, previous)

        logger.info(
            "synthetic_alert_generated",
            location_key=str(key),
            alert_id=alert.id,
            probability=probability,
            lead_time_hours=lead_time_hours,
            severity=alert.severity.value,
            risk_level=alert.risk_level.value,
        )
        return alert
