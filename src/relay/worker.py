"""Background worker entry point.

Usage:
    python -m src.relay.worker                   # poll and run due tasks
    python -m src.relay.worker --cancel-pending  # drop every pending relay task

Runs relay.deliver_event and relay.sync_page tasks from the Redis scheduler
until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import signal

import structlog

from src.relay.core.logging import configure_structlog
from src.relay.scheduling import DELIVER_EVENT_TASK, SYNC_PAGE_TASK, TaskScheduler
from src.relay.services import build_services, build_worker, close_services

logger = structlog.get_logger(__name__)


async def cancel_pending_tasks(scheduler: TaskScheduler) -> int:
    """Cancel every scheduled relay task (used on shutdown or uninstall)."""
    removed = 0
    for task_name in (DELIVER_EVENT_TASK, SYNC_PAGE_TASK):
        removed += await scheduler.cancel(task_name)
    logger.info("worker.pending_cancelled", removed=removed)
    return removed


async def run(cancel_pending: bool = False) -> None:
    services = build_services()
    try:
        if cancel_pending:
            if services.scheduler is not None:
                await cancel_pending_tasks(services.scheduler)
            return

        worker = build_worker(services)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, worker.stop)

        await worker.process_loop()
    finally:
        await close_services(services)


def main() -> None:
    parser = argparse.ArgumentParser(description="Relay background worker")
    parser.add_argument(
        "--cancel-pending",
        action="store_true",
        help="Cancel all pending relay tasks and exit",
    )
    args = parser.parse_args()

    configure_structlog()
    asyncio.run(run(cancel_pending=args.cancel_pending))


if __name__ == "__main__":
    main()
