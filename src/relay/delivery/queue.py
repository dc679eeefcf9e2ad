"""Delivery queue -- fire-and-continue hand-off of resolved events.

Everything about an event is resolved while the triggering request's
context is still accurate; only the HTTP call is deferred. The queued task
carries the fully resolved event.

- Default path: schedule a ``relay.deliver_event`` task; the worker calls
  run_queued_event() later.
- Degraded path: with no scheduler, or when scheduling itself fails,
  send inline. Failures are logged, not raised.

No ordering is guaranteed between independently queued events.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.relay.core.monitoring import track_delivery
from src.relay.delivery.client import DeliveryResult, EventSender
from src.relay.mapping.schemas import ResolvedEvent
from src.relay.scheduling.scheduler import DELIVER_EVENT_TASK, TaskScheduler

logger = structlog.get_logger(__name__)


async def deliver_safely(sender: EventSender, event: ResolvedEvent, mode: str) -> DeliveryResult:
    """Send one event, converting any exception into a failed DeliveryResult.

    This is the execution boundary for every delivery path: nothing raised
    by the sender escapes it.
    """
    try:
        result = await sender.send_event(
            event.user_id,
            event.event_name,
            event.email,
            dict(event.payload),
            dict(event.attributes),
        )
    except Exception as exc:
        result = DeliveryResult.failure(str(exc) or exc.__class__.__name__)

    track_delivery(event.event_name, mode, result.ok)
    if not result.ok:
        logger.error(
            "delivery.failed",
            mode=mode,
            user_id=event.user_id,
            event_key=event.event_key,
            event_name=event.event_name,
            status_code=result.status_code,
            error=result.error,
        )
    return result


class DeliveryQueue:
    """Enqueues resolved events for background delivery.

    Args:
        sender: EventSender used by the worker or by the inline fallback.
        scheduler: TaskScheduler for background execution. None selects the
            degraded inline path.
    """

    def __init__(self, sender: EventSender, scheduler: TaskScheduler | None = None) -> None:
        self._sender = sender
        self._scheduler = scheduler

    @property
    def is_async(self) -> bool:
        return self._scheduler is not None

    async def enqueue(self, event: ResolvedEvent) -> None:
        """Hand an event off for delivery. Never raises on delivery failure."""
        if self._scheduler is None:
            logger.debug("delivery.inline", user_id=event.user_id, event_name=event.event_name)
            await deliver_safely(self._sender, event, mode="inline")
            return

        try:
            await self._scheduler.schedule(DELIVER_EVENT_TASK, event.model_dump(mode="json"))
        except Exception as exc:
            # Scheduler unreachable: deliver now rather than lose the event
            logger.warning(
                "delivery.schedule_failed",
                user_id=event.user_id,
                event_key=event.event_key,
                event_name=event.event_name,
                error=str(exc) or exc.__class__.__name__,
            )
            await deliver_safely(self._sender, event, mode="inline")
            return

        logger.info(
            "delivery.queued",
            user_id=event.user_id,
            event_key=event.event_key,
            event_name=event.event_name,
        )

    async def send_now(self, event: ResolvedEvent) -> DeliveryResult:
        """Deliver synchronously and return the result to the caller.

        Used by the connectivity probe, which surfaces the error message.
        """
        return await deliver_safely(self._sender, event, mode="probe")

    async def run_queued_event(self, args: dict[str, Any]) -> DeliveryResult:
        """Worker handler for ``relay.deliver_event`` tasks.

        Delivery failures are logged and returned, never raised, so the
        worker does not retry an event Bento already rejected.
        """
        event = ResolvedEvent.model_validate(args)
        return await deliver_safely(self._sender, event, mode="queued")
