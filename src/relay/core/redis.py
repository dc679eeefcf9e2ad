"""Shared Redis client for the config store, task scheduler and DLQ.

One lazily created client per process; the API and the worker each build
their own. Responses are decoded to str because every relay value (JSON
documents, scheduled task members, stream fields) is text.
"""

from __future__ import annotations

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.relay.config import get_settings

_client: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis:
    """Return the process-wide Redis client, creating it on first use."""
    global _client
    if _client is None:
        settings = get_settings()
        _client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            health_check_interval=30,
        )
    return _client


async def ping_redis() -> str | None:
    """Return None if Redis answers PING, else the error text."""
    try:
        if not await get_redis_pool().ping():
            return "PING did not return PONG"
    except (RedisError, OSError) as exc:
        return str(exc) or exc.__class__.__name__
    return None


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
