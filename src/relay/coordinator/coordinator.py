"""Event coordinator -- decides deliver, suppress or defer for host events.

Most event types pass straight through: disabled types are dropped,
enabled ones are resolved and enqueued. Checkout and level change need a
dedup policy, because the host fires a generic level change as a side
effect of a checkout, in either order, within the same operation:

- checkout: delivered immediately, user recorded in the unit of work.
- level change to a real level: held until flush.
- level change to level <= 0: routed to "cancelled" immediately, carrying
  the level names captured before the change. At most one cancellation
  per user per unit of work.
- flush: held level changes for users who checked out are dropped, the
  rest are delivered. Runs exactly once per unit of work.

A user without an email is skipped silently.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.relay.coordinator.unit_of_work import PendingLevelChange, UnitOfWork
from src.relay.delivery.queue import DeliveryQueue
from src.relay.host.directory import HostDirectory, MembershipLevel, join_level_names
from src.relay.mapping.definitions import CANCELLED, CHECKOUT, LEVEL_CHANGED
from src.relay.mapping.resolver import FieldResolver
from src.relay.mapping.schemas import ResolvedEvent
from src.relay.mapping.settings import SettingsRepository

logger = structlog.get_logger(__name__)


class EventCoordinator:
    """Receives host notifications and hands qualifying events to the queue.

    Args:
        settings: SettingsRepository for enabled checks.
        resolver: FieldResolver computing event name and attributes.
        directory: HostDirectory for user identity lookups.
        queue: DeliveryQueue receiving resolved events.
    """

    def __init__(
        self,
        settings: SettingsRepository,
        resolver: FieldResolver,
        directory: HostDirectory,
        queue: DeliveryQueue,
    ) -> None:
        self._settings = settings
        self._resolver = resolver
        self._directory = directory
        self._queue = queue

    # ── Passthrough ───────────────────────────────────────────────────────

    async def notify(
        self,
        event_key: str,
        user_id: int,
        payload: dict[str, Any],
    ) -> ResolvedEvent | None:
        """Deliver an event that needs no dedup.

        Returns:
            The enqueued event, or None if it was dropped.
        """
        return await self._fire(event_key, user_id, payload)

    # ── Checkout / level-change dedup ─────────────────────────────────────

    def capture_old_levels(
        self,
        uow: UnitOfWork,
        user_id: int,
        old_levels: list[MembershipLevel],
    ) -> None:
        """Remember a user's levels before a change (overwrites earlier captures)."""
        uow.old_levels[user_id] = list(old_levels)

    async def on_checkout(
        self,
        uow: UnitOfWork,
        user_id: int,
        payload: dict[str, Any],
    ) -> ResolvedEvent | None:
        """Deliver a checkout immediately and mark the user as checked out."""
        uow.checkout_user_ids.add(user_id)
        return await self._fire(CHECKOUT, user_id, payload)

    async def on_level_changed(
        self,
        uow: UnitOfWork,
        user_id: int,
        level_id: int,
        level_name: str = "",
    ) -> ResolvedEvent | None:
        """Handle a level change.

        A real level (id > 0) is deferred to flush(). Level id <= 0 is a
        cancellation and is delivered now as the cancelled event type.

        Returns:
            The enqueued cancellation event, or None.
        """
        if level_id <= 0:
            return await self.on_cancelled(uow, user_id)

        old_names = join_level_names(uow.old_levels.get(user_id, []))
        uow.pending_level_changes.append(
            PendingLevelChange(
                user_id=user_id,
                level_id=level_id,
                new_level_name=level_name,
                old_level_names=old_names,
            )
        )
        logger.debug(
            "coordinator.level_change_deferred",
            uow_id=uow.id,
            user_id=user_id,
            level_id=level_id,
        )
        return None

    async def on_cancelled(self, uow: UnitOfWork, user_id: int) -> ResolvedEvent | None:
        """Deliver a cancellation with the levels captured before the change.

        The host may report one cancellation twice (a frontend cancel plus
        a level change to 0); only the first is delivered per unit of work.
        """
        if user_id in uow.cancelled_user_ids:
            return None
        uow.cancelled_user_ids.add(user_id)

        old_names = join_level_names(uow.old_levels.get(user_id, []))
        return await self._fire(CANCELLED, user_id, {"last_level_names": old_names})

    async def flush(self, uow: UnitOfWork) -> list[ResolvedEvent]:
        """Deliver held level changes not covered by a checkout.

        Idempotent: a second call on the same unit of work does nothing.
        All transient state is cleared afterwards.

        Returns:
            Level-change events enqueued by this flush.
        """
        if uow.flushed:
            return []
        uow.flushed = True

        pending = list(uow.pending_level_changes)
        checked_out = set(uow.checkout_user_ids)
        uow.clear()

        delivered: list[ResolvedEvent] = []
        for change in pending:
            if change.user_id in checked_out:
                logger.debug(
                    "coordinator.level_change_suppressed",
                    uow_id=uow.id,
                    user_id=change.user_id,
                )
                continue
            event = await self._fire(
                LEVEL_CHANGED,
                change.user_id,
                {
                    "level_id": change.level_id,
                    "new_level_name": change.new_level_name,
                    "old_level_names": change.old_level_names,
                },
            )
            if event is not None:
                delivered.append(event)
        return delivered

    # ── Internals ─────────────────────────────────────────────────────────

    async def _fire(
        self,
        event_key: str,
        user_id: int,
        payload: dict[str, Any],
    ) -> ResolvedEvent | None:
        if not await self._settings.is_enabled(event_key):
            return None

        identity = await self._directory.get_user_identity(user_id)
        if identity is None or not identity.email:
            logger.debug("coordinator.user_missing", event_key=event_key, user_id=user_id)
            return None

        resolved = await self._resolver.resolve(event_key, user_id, payload)
        if not resolved.event_name:
            return None

        event = ResolvedEvent(
            user_id=user_id,
            event_name=resolved.event_name,
            email=identity.email,
            payload=payload,
            attributes=resolved.attributes,
            event_key=event_key,
        )
        await self._queue.enqueue(event)
        return event
