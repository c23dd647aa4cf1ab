"""
SSE Events Stream.

GET /api/v1/events/stream

Client usage:
    const es = new EventSource('/api/v1/events/stream');
    es.onmessage = (e) => { const data = JSON.parse(e.data); ... };

One event per Alert Store mutation:
    {"type": "alert_set" | "alert_cleared", "location_key": "...", "alert": {...} | null}
"""

import asyncio
import json
from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from floodcast.alerting.events import AlertEventBus
from floodcast.api.deps import get_alert_service
from floodcast.service import FloodAlertService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/events", tags=["events"])

KEEPALIVE_SECONDS = 30.0


async def alert_event_stream(
    bus: AlertEventBus, keepalive_seconds: float = KEEPALIVE_SECONDS
) -> AsyncGenerator[str, None]:
    """
    Yield SSE-formatted strings for every publish on the bus.

    Sends a keepalive comment when idle to prevent connection timeout.
    """
    queue = bus.open_queue()
    logger.info("sse_subscriber_added", total=bus.subscriber_count)
    try:
        while True:
            try:
                location_key, alert = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            event = {
                "type": "alert_set" if alert is not None else "alert_cleared",
                "location_key": location_key,
                "alert": alert.model_dump(mode="json") if alert is not None else None,
            }
            yield f"data: {json.dumps(event, ensure_ascii=False)}\n\n"
    finally:
        bus.close_queue(queue)
        logger.info("sse_subscriber_removed", remaining=bus.subscriber_count)


@router.get("/stream")
async def event_stream(service: FloodAlertService = Depends(get_alert_service)):
    """SSE stream of alert set / clear events for all locations."""
    return StreamingResponse(
        alert_event_stream(service.bus),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
