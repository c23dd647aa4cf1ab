"""
Headless Monitor Entry Point.

Usage:
    python -m floodcast.monitor_main

This does NOT run a web server. It monitors the locations listed in
MONITORED_LOCATIONS (JSON list of {"name", "lat", "lng", "location_id"})
and submits notifications until SIGINT / SIGTERM.
"""

import asyncio
import signal

import structlog
from pydantic import ValidationError

from floodcast.alerting.schemas import MonitoredLocation
from floodcast.config import settings
from floodcast.logging_config import configure_logging
from floodcast.service import build_service

logger = structlog.get_logger(__name__)


def load_locations(raw: list[dict]) -> list[MonitoredLocation]:
    """Parse configured locations; invalid entries are logged and skipped."""
    locations = []
    for entry in raw:
        try:
            locations.append(MonitoredLocation.model_validate(entry))
        except ValidationError as e:
            logger.warning("monitored_location_invalid", entry=entry, error=str(e))
    return locations


async def main():
    """Initialize the service and monitor configured locations."""
    configure_logging(settings.log_level, settings.log_format)
    logger.info("monitor_starting", version=settings.app_version)

    service = build_service(settings)
    locations = load_locations(settings.monitored_locations)
    if not locations:
        logger.warning("no_monitored_locations", hint="set MONITORED_LOCATIONS")

    for location in locations:
        await service.start_monitoring(location)

    # Graceful shutdown handling
    stop_event = asyncio.Event()

    def _handle_signal(signum, frame):
        logger.info("shutdown_signal_received", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info(
        "monitor_running",
        locations=len(locations),
        interval_seconds=settings.monitor_interval_seconds,
    )

    await stop_event.wait()

    await service.close()
    logger.info("monitor_shutdown_complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
