"""Opaque key-value persistence for settings and bulk sync progress.

Values are JSON-serializable Python objects. The relay only ever needs
get/set/delete on a handful of keys, so the store interface stays minimal:

- RedisConfigStore: JSON values under a ``relay:`` key prefix (production).
- InMemoryConfigStore: process-local dict (single-process development, tests).

Neither implementation offers compare-and-swap. Callers doing
read-modify-write accept last-writer-wins.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as aioredis


class ConfigStore(ABC):
    """Abstract key-value store for relay state."""

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for key, or default if absent."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store value under key, optionally expiring after ttl seconds."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key if present."""
        ...


class RedisConfigStore(ConfigStore):
    """ConfigStore backed by Redis string keys holding JSON documents.

    Args:
        redis: Async Redis client created with ``decode_responses=True``.
        prefix: Key namespace, default ``relay:``.
    """

    def __init__(self, redis: aioredis.Redis, prefix: str = "relay:") -> None:
        self._redis = redis
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str, default: Any = None) -> Any:
        raw = await self._redis.get(self._key(key))
        if raw is None:
            return default
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self._redis.set(self._key(key), json.dumps(value), ex=ttl)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._key(key))


class InMemoryConfigStore(ConfigStore):
    """Process-local ConfigStore. Values are JSON round-tripped on write so
    callers never share mutable state with the store."""

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        entry = self._data.get(key)
        if entry is None:
            return default
        raw, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._data[key]
            return default
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._data[key] = (json.dumps(value), expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)
