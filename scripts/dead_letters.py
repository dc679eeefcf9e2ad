#!/usr/bin/env python3
"""CLI script to review and replay dead-lettered relay tasks.

Usage:
    uv run python scripts/dead_letters.py list
    uv run python scripts/dead_letters.py list --count 200
    uv run python scripts/dead_letters.py replay 1718000000000-0

Connects to Redis using REDIS_URL from environment or .env file.
Replayed tasks go back onto the scheduler with a fresh attempt counter.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.relay
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def list_dead_letters(count: int) -> None:
    from src.relay.core.redis import close_redis, get_redis_pool
    from src.relay.scheduling import DeadLetterQueue

    dlq = DeadLetterQueue(get_redis_pool())
    try:
        messages = await dlq.list_messages(count=count)
        if not messages:
            print("No dead-lettered tasks.")
            return
        for message_id, data in messages:
            print(
                f"{message_id}  {data.get('task_name', '?')}  "
                f"attempts={data.get('attempts', '?')}  "
                f"at={data.get('dead_lettered_at', '?')}"
            )
            print(f"    error: {data.get('error', '')}")
    finally:
        await close_redis()


async def replay_dead_letter(message_id: str) -> None:
    from src.relay.core.redis import close_redis, get_redis_pool
    from src.relay.scheduling import DeadLetterQueue, RedisTaskScheduler

    redis = get_redis_pool()
    try:
        task = await DeadLetterQueue(redis).replay(message_id, RedisTaskScheduler(redis))
        print(f"Replayed {message_id} as task {task.task_id} ({task.task_name})")
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        await close_redis()


def main() -> None:
    parser = argparse.ArgumentParser(description="Review and replay dead-lettered relay tasks")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List dead-lettered tasks, oldest first")
    list_parser.add_argument("--count", type=int, default=50, help="Maximum entries to show")

    replay_parser = subparsers.add_parser("replay", help="Re-schedule one dead-lettered task")
    replay_parser.add_argument("message_id", help="Stream message ID from 'list'")

    args = parser.parse_args()

    if args.command == "list":
        asyncio.run(list_dead_letters(args.count))
    else:
        asyncio.run(replay_dead_letter(args.message_id))


if __name__ == "__main__":
    main()
