"""
Notification Service — Job status changes pushed to an outbound webhook.

Delivery is fire-and-forget: failures are logged, never raised, so a
downstream outage cannot fail a check-in or check-out.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from config import settings

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify_status_change(self, job: Any, previous_status: str, new_status: str) -> None: ...


class WebhookNotifier:
    """POSTs a JSON status-change payload to STATUS_WEBHOOK_URL (no-op when unset)."""

    def __init__(self, url: str | None = None, timeout: float | None = None):
        self.url = url if url is not None else settings.STATUS_WEBHOOK_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SEC

    async def notify_status_change(self, job: Any, previous_status: str, new_status: str) -> None:
        if not self.url:
            logger.debug("STATUS_WEBHOOK_URL not configured — skipping notification for job %s", job.id)
            return

        payload = {
            "event": "job.status_changed",
            "job_id": str(job.id),
            "technician_id": str(job.technician_id),
            "previous_status": previous_status,
            "new_status": new_status,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload)
            if resp.status_code >= 300:
                logger.warning(
                    "Status webhook rejected: job_id=%s, status=%s, body=%s",
                    job.id,
                    resp.status_code,
                    resp.text[:200],
                )
                return
            logger.info("Status webhook sent: job_id=%s, %s → %s", job.id, previous_status, new_status)
        except httpx.HTTPError as e:
            logger.error("Status webhook error: job_id=%s, error=%s", job.id, str(e))
