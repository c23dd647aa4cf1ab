"""
Prediction Client — HTTP client for the external flood prediction model.

The model service is external. The monitor only needs
get_prediction(lat, lon); this client maps the model's response format to
PredictionSnapshot:

  flood_probability               → probability
  timeframe_hours                 → timeframe_hours
  confidence                      → confidence
  weather_summary.rainfall_24h    → rainfall_24h
  weather_summary.current_temp    → current_temp
  weather_summary.humidity        → humidity
  weather_summary.current_rainfall → current_rainfall
  expected_duration_hours         → expected_duration_hours
  model_version                   → model_version

Unlike a best-effort client, failures raise PredictionFetchError: the
monitor needs to tell "no risk" apart from "no answer".
"""

from typing import Optional

import httpx
import structlog

from floodcast.alerting.schemas import PredictionSnapshot
from floodcast.exceptions import PredictionFetchError

logger = structlog.get_logger(__name__)


def _parse_prediction(raw: dict) -> PredictionSnapshot:
    """Map a raw model response dict to PredictionSnapshot."""
    # Some deployments wrap the payload in {"data": {...}}
    if isinstance(raw.get("data"), dict):
        raw = raw["data"]

    weather = raw.get("weather_summary") or {}
    probability = raw.get("flood_probability", raw.get("probability"))
    if probability is None:
        raise ValueError("response has no flood_probability")

    return PredictionSnapshot(
        probability=float(probability),
        timeframe_hours=raw.get("timeframe_hours"),
        confidence=raw.get("confidence", 0.0),
        rainfall_24h=float(weather.get("rainfall_24h", 0.0) or 0.0),
        current_temp=weather.get("current_temp"),
        humidity=weather.get("humidity"),
        current_rainfall=weather.get("current_rainfall"),
        expected_duration_hours=raw.get("expected_duration_hours"),
        model_version=str(raw.get("model_version", "unknown")),
    )


class HttpPredictionProvider:
    """HTTP client for the prediction model API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._shared_client = client

    def _headers(self) -> dict:
        return {"X-API-Key": self.api_key} if self.api_key else {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers=self._headers(),
        )

    async def get_prediction(self, lat: float, lon: float) -> PredictionSnapshot:
        """Fetch one prediction. Raises PredictionFetchError on any failure."""
        params = {"lat": lat, "lon": lon}
        try:
            if self._shared_client is not None:
                resp = await self._shared_client.get(
                    f"{self.base_url}/predict", params=params, headers=self._headers()
                )
                resp.raise_for_status()
                body = resp.json()
            else:
                async with self._client() as client:
                    resp = await client.get(f"{self.base_url}/predict", params=params)
                    resp.raise_for_status()
                    body = resp.json()
        except httpx.HTTPStatusError as e:
            raise PredictionFetchError(
                lat, lon, f"HTTP {e.response.status_code}", cause=e
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise PredictionFetchError(lat, lon, type(e).__name__, cause=e) from e

        if not isinstance(body, dict):
            raise PredictionFetchError(lat, lon, "unexpected response shape")

        try:
            snapshot = _parse_prediction(body)
        except (TypeError, ValueError) as e:
            raise PredictionFetchError(lat, lon, f"unparseable response: {e}", cause=e) from e

        logger.debug(
            "prediction_fetched",
            lat=lat,
            lon=lon,
            probability=snapshot.probability,
            timeframe_hours=snapshot.timeframe_hours,
            model_version=snapshot.model_version,
        )
        return snapshot

