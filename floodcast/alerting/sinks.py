"""
Notification Sinks — concrete delivery targets for the scheduler.

- InMemoryNotificationSink: records submitted / cancelled tasks
  (tests, demos, in-app polling)
- WebhookNotificationSink: POSTs JSON to a webhook; deferred tasks are held
  as APScheduler date jobs until their trigger time

Delivery is at-least-once; consumers deduplicate on metadata.alert_id.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from floodcast.alerting.schemas import NotificationTask

logger = structlog.get_logger(__name__)


class InMemoryNotificationSink:
    """Records every submission; nothing is actually delivered."""

    def __init__(self):
        self.submitted: dict[str, NotificationTask] = {}
        self.cancelled: set[str] = set()

    async def submit(self, task: NotificationTask) -> str:
        handle = f"ntf_{uuid.uuid4().hex[:12]}"
        self.submitted[handle] = task
        logger.info(
            "in_app_notification_recorded",
            handle=handle,
            title=task.title,
            trigger_at=task.trigger_at.isoformat() if task.trigger_at else None,
        )
        return handle

    async def cancel(self, handle: str) -> None:
        if handle in self.submitted:
            self.cancelled.add(handle)

    @property
    def active(self) -> dict[str, NotificationTask]:
        """Submitted and not cancelled."""
        return {h: t for h, t in self.submitted.items() if h not in self.cancelled}

    def clear(self) -> None:
        self.submitted.clear()
        self.cancelled.clear()


class WebhookNotificationSink:
    """
    Dispatch notification tasks via HTTP webhook.

    Immediate tasks are posted inside submit(); a non-2xx/3xx response or a
    transport error raises, which the scheduler logs. Deferred tasks become
    date jobs and are posted when they fire (failures there are logged).
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: Optional[dict] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not url:
            raise ValueError("WebhookNotificationSink requires a URL")
        self.url = url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._owns_scheduler = scheduler is None
        self._client = client

    async def submit(self, task: NotificationTask) -> str:
        handle = f"webhook_{uuid.uuid4().hex[:12]}"
        now = datetime.now(timezone.utc)

        if task.trigger_at is None or task.trigger_at <= now:
            await self._post(handle, task)
            return handle

        self._ensure_started()
        self._scheduler.add_job(
            self._deliver_deferred,
            DateTrigger(run_date=task.trigger_at),
            args=[handle, task],
            id=handle,
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.info(
            "webhook_notification_deferred",
            handle=handle,
            trigger_at=task.trigger_at.isoformat(),
        )
        return handle

    async def cancel(self, handle: str) -> None:
        try:
            self._scheduler.remove_job(handle)
        except JobLookupError:
            return
        logger.info("webhook_notification_cancelled", handle=handle)

    async def close(self) -> None:
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def _ensure_started(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()

    async def _deliver_deferred(self, handle: str, task: NotificationTask) -> None:
        try:
            await self._post(handle, task)
        except Exception as e:
            logger.error("webhook_deferred_delivery_failed", handle=handle, error=str(e))

    @staticmethod
    def build_payload(handle: str, task: NotificationTask) -> dict:
        return {
            "handle": handle,
            "title": task.title,
            "body": task.body,
            "priority": task.priority.value,
            "kind": task.kind.value,
            "metadata": task.metadata,
            "trigger_at": task.trigger_at.isoformat() if task.trigger_at else None,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }

    async def _post(self, handle: str, task: NotificationTask) -> None:
        payload = self.build_payload(handle, task)
        if self._client is not None:
            response = await self._client.post(self.url, json=payload, headers=self.headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload, headers=self.headers)

        if response.status_code >= 400:
            logger.warning(
                "webhook_notification_failed",
                handle=handle,
                url=self.url,
                status=response.status_code,
            )
            raise httpx.HTTPStatusError(
                f"Webhook returned HTTP {response.status_code}",
                request=response.request,
                response=response,
            )
        logger.info(
            "webhook_notification_sent",
            handle=handle,
            url=self.url,
            status=response.status_code,
        )
