"""Dead letter queue for background tasks that exhausted their retries.

Failed tasks are appended to a Redis Stream for manual review and can be
replayed back onto the scheduler.

DLQ key: ``relay:tasks:dlq``
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import redis.asyncio as aioredis
import structlog

from src.relay.scheduling.scheduler import ScheduledTask, TaskScheduler

logger = structlog.get_logger(__name__)


class DeadLetterQueue:
    """Dead letter queue backed by a Redis Stream.

    Args:
        redis: Raw async Redis client.
        key: Stream key for dead-lettered tasks.
    """

    def __init__(self, redis: aioredis.Redis, key: str = "relay:tasks:dlq") -> None:
        self._redis = redis
        self._key = key

    async def send_to_dlq(self, task: ScheduledTask, error: str) -> str:
        """Store a failed task with failure metadata.

        Args:
            task: The task that failed on its final attempt.
            error: Error message from the last attempt.

        Returns:
            Stream message ID assigned by XADD.
        """
        data: dict[str, str] = {
            "task": task.model_dump_json(),
            "task_name": task.task_name,
            "error": error,
            "attempts": str(task.attempt + 1),
            "dead_lettered_at": datetime.now(timezone.utc).isoformat(),
        }
        message_id = await self._redis.xadd(self._key, data)

        logger.warning(
            "task_dead_lettered",
            task_id=task.task_id,
            task_name=task.task_name,
            error=error,
            attempts=task.attempt + 1,
        )
        return message_id

    async def list_messages(self, count: int = 50) -> list[tuple[str, dict[str, Any]]]:
        """List dead-lettered tasks for review, oldest first."""
        return await self._redis.xrange(self._key, count=count)

    async def replay(self, message_id: str, scheduler: TaskScheduler) -> ScheduledTask:
        """Re-schedule a dead-lettered task with a fresh attempt counter.

        Raises:
            ValueError: If the message ID is not in the DLQ.
        """
        messages = await self._redis.xrange(self._key, min=message_id, max=message_id, count=1)
        if not messages:
            msg = f"DLQ message '{message_id}' not found in {self._key}"
            raise ValueError(msg)

        _msg_id, data = messages[0]
        original = ScheduledTask.model_validate_json(data["task"])
        task = await scheduler.schedule(original.task_name, original.args)
        await self._redis.xdel(self._key, message_id)

        logger.info(
            "task_replayed",
            dlq_message_id=message_id,
            task_name=task.task_name,
            task_id=task.task_id,
        )
        return task
