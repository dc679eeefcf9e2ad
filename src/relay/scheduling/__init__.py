"""Background scheduling: delayed tasks, worker loop and dead letter queue.

Exports:
    TaskScheduler: Abstract run-later capability.
    RedisTaskScheduler: Sorted-set implementation with atomic claiming.
    TaskWorker: Poll loop with retry and dead-lettering.
    DeadLetterQueue: Redis Stream of permanently failed tasks.
"""

from src.relay.scheduling.dlq import DeadLetterQueue
from src.relay.scheduling.scheduler import (
    DELIVER_EVENT_TASK,
    SYNC_PAGE_TASK,
    RedisTaskScheduler,
    ScheduledTask,
    TaskScheduler,
)
from src.relay.scheduling.worker import TaskWorker

__all__ = [
    "DELIVER_EVENT_TASK",
    "SYNC_PAGE_TASK",
    "DeadLetterQueue",
    "RedisTaskScheduler",
    "ScheduledTask",
    "TaskScheduler",
    "TaskWorker",
]

