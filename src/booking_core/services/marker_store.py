"""TTL-bearing markers in Redis (reminder dedup, sweep "last run" guards)."""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as redis

from booking_core.config import get_settings

logger = logging.getLogger(__name__)

REMINDER_KEY_PREFIX = "reminder:"
SWEEP_KEY_PREFIX = "sweep:"


def reminder_key(appointment_id: str, label: str) -> str:
    """Dedup key for one reminder of one appointment, e.g. `reminder:<id>-24h`."""
    return f"{REMINDER_KEY_PREFIX}{appointment_id}-{label}"


def sweep_key(name: str) -> str:
    return f"{SWEEP_KEY_PREFIX}{name}:last-run"


class MarkerStore:
    """Small facade over a Redis client for expiring markers."""

    def __init__(self, client: Optional[redis.Redis] = None):
        if client is None:
            settings = get_settings()
            client = redis.from_url(
                settings.redis.url,
                password=settings.redis.password,
                decode_responses=settings.redis.decode_responses,
                socket_timeout=settings.redis.socket_timeout,
                socket_connect_timeout=settings.redis.socket_connect_timeout,
            )
        self._client = client

    async def claim(self, key: str, ttl_seconds: int, value: str = "1") -> bool:
        """Set `key` only if absent. True when this caller created it."""
        created = await self._client.set(key, value, nx=True, ex=ttl_seconds)
        return bool(created)

    async def mark(self, key: str, ttl_seconds: int, value: str = "1") -> None:
        await self._client.set(key, value, ex=ttl_seconds)

    async def exists(self, key: str) -> bool:
        return bool(await self._client.exists(key))

    async def release(self, key: str) -> None:
        await self._client.delete(key)

    async def aclose(self) -> None:
        await self._client.aclose()


def get_marker_store() -> MarkerStore:
    """Factory function to create a MarkerStore on the configured Redis."""
    return MarkerStore()
