"""Notification/analytics event sinks.

Event delivery is fire-and-forget: a sink logs and swallows its own failures so
that a broken webhook never fails a scene operation.
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx

from scene_engine.config import settings
from scene_engine.domain.models import Event
from scene_engine.logging import get_logger
from scene_engine.utils import utcnow

logger = get_logger(__name__)


class EventSink(ABC):
    """Receives orchestration events."""

    @abstractmethod
    def emit(self, event: Event) -> None:
        """Hand off an event. Must not raise."""
        ...


class NullEventSink(EventSink):
    """Drops every event (events disabled)."""

    def emit(self, event: Event) -> None:
        return None


class LoggingEventSink(EventSink):
    """Writes events to the structured log only."""

    def emit(self, event: Event) -> None:
        if event.occurred_at is None:
            event.occurred_at = utcnow()
        payload = event.to_dict()
        logger.info(
            "event_emitted",
            event_type=payload["type"],
            user_id=payload["user_id"],
            **payload["properties"],
        )


class CeleryEventSink(EventSink):
    """Queues webhook delivery on the events queue."""

    def __init__(self, webhook_url: str | None = None) -> None:
        self.webhook_url = webhook_url or settings.event_webhook_url

    def emit(self, event: Event) -> None:
        if event.occurred_at is None:
            event.occurred_at = utcnow()
        payload = event.to_dict()

        if not self.webhook_url:
            logger.debug("event_webhook_not_configured", event_type=payload["type"])
            return

        from scene_engine.jobs.scene_tasks import deliver_event_task

        try:
            deliver_event_task.delay(payload, self.webhook_url)
        except Exception as e:
            logger.error("event_enqueue_failed", event_type=payload["type"], error=str(e))


async def deliver_event(payload: dict[str, Any], webhook_url: str, timeout: float = 10.0) -> bool:
    """POST an event payload to the analytics webhook.

    Returns:
        True if the webhook accepted the event
    """
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(webhook_url, json=payload, timeout=timeout)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error("event_delivery_failed", event_type=payload.get("type"), error=str(e))
        return False

    logger.info("event_delivered", event_type=payload.get("type"))
    return True
