"""Booking notifications.

`send` awaits delivery and raises on failure; `dispatch` schedules it as a
detached task whose failure is logged and never reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

import httpx

from booking_core.clients.notification_client import NotificationClient
from booking_core.config import get_settings

logger = logging.getLogger(__name__)

EVENTS_PATH = "/api/v1/events"

# Strong references so pending tasks are not garbage collected mid-flight
_background_tasks: Set[asyncio.Task] = set()


class NotificationService:
    """Publishes booking events to the notification service."""

    def __init__(self, client: Optional[NotificationClient] = None):
        if client is None:
            settings = get_settings().notifications
            if settings.is_configured:
                client = NotificationClient(
                    base_url=settings.url,
                    api_key=settings.api_key,
                    timeout=settings.timeout,
                )
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def send(self, event: str, payload: Dict[str, Any]) -> None:
        """
        Deliver one event.

        Raises:
            httpx.HTTPError: If delivery fails
        """
        if self._client is None:
            logger.debug(f"Notification service not configured; dropping '{event}'")
            return
        await self._client.post(EVENTS_PATH, json={"event": event, "data": payload})
        logger.info(f"Sent notification '{event}'")

    def dispatch(self, event: str, payload: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Fire-and-forget `send`. Returns the task (mostly for tests)."""
        if self._client is None:
            logger.debug(f"Notification service not configured; dropping '{event}'")
            return None

        task = asyncio.create_task(self.send(event, payload), name=f"notify:{event}")
        _background_tasks.add(task)
        task.add_done_callback(_make_done_callback(event))
        return task


def _make_done_callback(event: str):
    def _done(task: asyncio.Task) -> None:
        _background_tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Notification '{event}' was cancelled")
            return
        error = task.exception()
        if error is None:
            return
        if isinstance(error, httpx.HTTPError):
            logger.warning(f"Notification '{event}' failed: {error}")
        else:
            logger.error(f"Notification '{event}' failed unexpectedly: {error!r}")

    return _done


def get_notification_service() -> NotificationService:
    """Factory function to create NotificationService instance."""
    return NotificationService()
