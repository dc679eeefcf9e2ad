"""Background task worker with retry and dead-lettering.

Polls the scheduler for due tasks and dispatches each to its registered
handler. A handler that raises is retried with backoff (1s, 4s, 16s) and
dead-lettered after MAX_RETRIES retries. Handler exceptions never escape
the loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from src.relay.core.monitoring import worker_tasks_total
from src.relay.scheduling.dlq import DeadLetterQueue
from src.relay.scheduling.scheduler import ScheduledTask, TaskScheduler

logger = structlog.get_logger(__name__)

TaskHandler = Callable[[dict[str, Any]], Awaitable[None]]


class TaskWorker:
    """Executes scheduled tasks.

    Args:
        scheduler: TaskScheduler to claim due tasks from.
        dlq: DeadLetterQueue for permanently failed tasks.
        poll_interval: Seconds to sleep when no task is due.
        batch_size: Maximum tasks claimed per poll.
    """

    MAX_RETRIES: int = 3
    RETRY_DELAYS: list[int] = [1, 4, 16]

    def __init__(
        self,
        scheduler: TaskScheduler,
        dlq: DeadLetterQueue | None = None,
        poll_interval: float = 1.0,
        batch_size: int = 10,
    ) -> None:
        self._scheduler = scheduler
        self._dlq = dlq
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._handlers: dict[str, TaskHandler] = {}
        self._running = False

    def register(self, task_name: str, handler: TaskHandler) -> None:
        self._handlers[task_name] = handler

    @property
    def task_names(self) -> list[str]:
        return sorted(self._handlers)

    async def run_once(self) -> int:
        """Claim and execute one batch of due tasks. Returns tasks run."""
        tasks = await self._scheduler.claim_due(limit=self._batch_size)
        for task in tasks:
            await self._execute(task)
        return len(tasks)

    async def process_loop(self) -> None:
        """Poll until stop() is called."""
        self._running = True
        logger.info("worker_started", tasks=self.task_names)

        while self._running:
            try:
                ran = await self.run_once()
            except Exception:
                logger.exception("worker_poll_failed")
                ran = 0
            if ran == 0:
                await asyncio.sleep(self._poll_interval)

        logger.info("worker_stopped")

    def stop(self) -> None:
        """Signal the processing loop to stop after current iteration."""
        self._running = False

    async def _execute(self, task: ScheduledTask) -> None:
        handler = self._handlers.get(task.task_name)
        if handler is None:
            logger.error("worker_unknown_task", task_name=task.task_name, task_id=task.task_id)
            if self._dlq is not None:
                await self._dlq.send_to_dlq(task, f"No handler for task '{task.task_name}'")
            worker_tasks_total.labels(task_name=task.task_name, status="unknown").inc()
            return

        try:
            await handler(task.args)
        except Exception as exc:
            await self._handle_failure(task, exc)
            return

        worker_tasks_total.labels(task_name=task.task_name, status="success").inc()
        logger.debug("task_completed", task_name=task.task_name, task_id=task.task_id)

    async def _handle_failure(self, task: ScheduledTask, exc: Exception) -> None:
        logger.warning(
            "task_failed",
            task_name=task.task_name,
            task_id=task.task_id,
            attempt=task.attempt,
            error=str(exc),
        )

        if task.attempt >= self.MAX_RETRIES:
            worker_tasks_total.labels(task_name=task.task_name, status="dead_lettered").inc()
            if self._dlq is not None:
                await self._dlq.send_to_dlq(task, str(exc))
            else:
                logger.error("task_dropped", task_name=task.task_name, task_id=task.task_id)
            return

        delay = self.RETRY_DELAYS[min(task.attempt, len(self.RETRY_DELAYS) - 1)]
        await self._scheduler.reschedule(task, delay)
        worker_tasks_total.labels(task_name=task.task_name, status="retried").inc()
        logger.info(
            "task_retried",
            task_name=task.task_name,
            task_id=task.task_id,
            attempt=task.attempt + 1,
            delay=delay,
        )
