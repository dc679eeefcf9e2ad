"""Delayed task scheduling backed by a Redis sorted set.

Tasks are JSON members of a single sorted set scored by their run-at
epoch time. A worker claims due tasks with ZREM: only the caller whose
ZREM returns 1 owns the task, so concurrent workers never run the same
task twice.

Key: ``relay:tasks:scheduled``
"""

from __future__ import annotations

import json
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as aioredis
import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

# Task names shared by producers and the worker
DELIVER_EVENT_TASK = "relay.deliver_event"
SYNC_PAGE_TASK = "relay.sync_page"


class ScheduledTask(BaseModel):
    """A unit of background work."""

    task_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    task_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    run_at: float = Field(default_factory=time.time)
    attempt: int = 0

    def matches(self, task_name: str, match_args: dict[str, Any] | None) -> bool:
        """True if this task has the given name and every match_args item."""
        if self.task_name != task_name:
            return False
        if not match_args:
            return True
        return all(self.args.get(k) == v for k, v in match_args.items())


class TaskScheduler(ABC):
    """Capability: run a named task later, possibly on another worker."""

    @abstractmethod
    async def schedule(
        self,
        task_name: str,
        args: dict[str, Any],
        run_at: float | None = None,
    ) -> ScheduledTask:
        """Schedule a task. ``run_at`` defaults to now."""
        ...

    @abstractmethod
    async def cancel(self, task_name: str, match_args: dict[str, Any] | None = None) -> int:
        """Cancel not-yet-claimed tasks. Returns the number removed."""
        ...

    @abstractmethod
    async def claim_due(self, limit: int = 10, now: float | None = None) -> list[ScheduledTask]:
        """Claim up to ``limit`` tasks whose run-at time has passed."""
        ...

    @abstractmethod
    async def reschedule(self, task: ScheduledTask, delay: float) -> ScheduledTask:
        """Put a claimed task back with its attempt counter incremented."""
        ...


class RedisTaskScheduler(TaskScheduler):
    """TaskScheduler on a Redis sorted set.

    Args:
        redis: Async Redis client created with ``decode_responses=True``.
        key: Sorted set key.
    """

    def __init__(self, redis: aioredis.Redis, key: str = "relay:tasks:scheduled") -> None:
        self._redis = redis
        self._key = key

    async def _put(self, task: ScheduledTask) -> None:
        await self._redis.zadd(self._key, {task.model_dump_json(): task.run_at})

    async def schedule(
        self,
        task_name: str,
        args: dict[str, Any],
        run_at: float | None = None,
    ) -> ScheduledTask:
        task = ScheduledTask(
            task_name=task_name,
            args=args,
            run_at=run_at if run_at is not None else time.time(),
        )
        await self._put(task)
        logger.debug(
            "task_scheduled",
            task_name=task_name,
            task_id=task.task_id,
            run_at=task.run_at,
        )
        return task

    async def reschedule(self, task: ScheduledTask, delay: float) -> ScheduledTask:
        retry = task.model_copy(
            update={"attempt": task.attempt + 1, "run_at": time.time() + delay}
        )
        await self._put(retry)
        return retry

    async def pending(self, task_name: str | None = None) -> list[ScheduledTask]:
        """List scheduled (unclaimed) tasks, optionally filtered by name."""
        members = await self._redis.zrange(self._key, 0, -1)
        tasks = [ScheduledTask.model_validate(json.loads(m)) for m in members]
        if task_name is None:
            return tasks
        return [t for t in tasks if t.task_name == task_name]

    async def cancel(self, task_name: str, match_args: dict[str, Any] | None = None) -> int:
        members = await self._redis.zrange(self._key, 0, -1)
        doomed = [
            m for m in members
            if ScheduledTask.model_validate(json.loads(m)).matches(task_name, match_args)
        ]
        removed = 0
        if doomed:
            removed = await self._redis.zrem(self._key, *doomed)

        logger.info(
            "tasks_cancelled",
            task_name=task_name,
            match_args=match_args,
            removed=removed,
        )
        return removed

    async def claim_due(self, limit: int = 10, now: float | None = None) -> list[ScheduledTask]:
        cutoff = now if now is not None else time.time()
        members = await self._redis.zrangebyscore(
            self._key, "-inf", cutoff, start=0, num=limit
        )

        claimed: list[ScheduledTask] = []
        for member in members:
            # Only the worker whose ZREM succeeds owns the task
            if await self._redis.zrem(self._key, member) == 1:
                claimed.append(ScheduledTask.model_validate(json.loads(member)))
        return claimed
