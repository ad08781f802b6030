"""Notification sink: audit trail and webhooks for committed changes.

get_db() hands every committed ChangeEvent to the active sink.  The default
AuditWebhookSink:

  1. writes one ActivityLog row per event in its own transaction, and
  2. POSTs each event to every configured webhook URL as a background task.

Neither step can fail the request that produced the events: errors are
logged and dropped.  Pending webhook deliveries are awaited on shutdown
(see main.lifespan) via drain().

Configuration:
    WEBHOOK_URLS=https://erp.example.com/hooks/hemptrack   (comma-separated)
    WEBHOOK_TIMEOUT_SECONDS=5
"""

import asyncio
import logging
from typing import Iterable

import httpx

from app.config import settings
from app.models.activity_log import ActivityLog
from app.utils.activity import ChangeEvent

logger = logging.getLogger("hemptrack.notifications")


class NotificationSink:
    """Receives change events after their transaction committed."""

    async def publish(self, events: Iterable[ChangeEvent]) -> None:
        raise NotImplementedError

    async def drain(self) -> None:
        """Wait for deliveries still in flight."""


class AuditWebhookSink(NotificationSink):
    def __init__(
        self,
        session_factory=None,
        webhook_urls: list[str] | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        if session_factory is None:
            from app.database import async_session  # deferred to avoid circular
            session_factory = async_session
        self.session_factory = session_factory
        self.webhook_urls = (
            settings.webhook_url_list if webhook_urls is None else list(webhook_urls)
        )
        self.timeout = timeout if timeout is not None else settings.webhook_timeout_seconds
        self._client = client
        self._tasks: set[asyncio.Task] = set()

    async def publish(self, events: Iterable[ChangeEvent]) -> None:
        events = list(events)
        if not events:
            return
        await self._write_audit(events)
        for event in events:
            for url in self.webhook_urls:
                task = asyncio.create_task(self._deliver(url, event))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def _write_audit(self, events: list[ChangeEvent]) -> None:
        try:
            async with self.session_factory() as db:
                for event in events:
                    db.add(ActivityLog(
                        actor_id=event.actor_id,
                        action=event.action,
                        entity_type=event.entity_type,
                        entity_id=event.entity_id,
                        old_value=event.old_value,
                        new_value=event.new_value,
                        created_at=event.occurred_at,
                    ))
                await db.commit()
        except Exception:
            logger.exception("Failed to write %d audit entries", len(events))

    async def _deliver(self, url: str, event: ChangeEvent) -> None:
        try:
            if self._client is not None:
                response = await self._client.post(
                    url, json=event.to_payload(), timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=event.to_payload())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Webhook %s for %s failed: %s", url, event.name, exc)
        except Exception:
            logger.exception("Webhook %s for %s failed", url, event.name)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        if self._tasks:
            logger.info("Waiting for %d webhook deliveries", len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)


# ── Active sink ──────────────────────────────────────────────

_sink: NotificationSink | None = None


def get_sink() -> NotificationSink:
    global _sink
    if _sink is None:
        _sink = AuditWebhookSink()
    return _sink


def set_sink(sink: NotificationSink | None) -> None:
    """Replace the active sink (None restores the default on next use)."""
    global _sink
    _sink = sink
