"""Membership hook adapters.

Turn raw membership notifications into coordinator calls, looking up level
names through the host directory.
"""

from __future__ import annotations

from src.relay.coordinator import EventCoordinator, UnitOfWork
from src.relay.host.directory import HostDirectory, MembershipLevel
from src.relay.hooks.schemas import MembershipOrder
from src.relay.mapping.definitions import EXPIRED, PAYMENT_COMPLETED, PAYMENT_FAILED
from src.relay.mapping.schemas import ResolvedEvent


class MembershipHooks:
    """Adapters for membership checkout, level, payment and expiry hooks.

    Args:
        coordinator: EventCoordinator receiving the events.
        directory: HostDirectory for level lookups.
    """

    def __init__(self, coordinator: EventCoordinator, directory: HostDirectory) -> None:
        self._coordinator = coordinator
        self._directory = directory

    async def _level_name(self, level_id: int) -> str:
        level = await self._directory.get_level(level_id)
        return level.name if level is not None else ""

    def before_level_change(
        self,
        uow: UnitOfWork,
        user_id: int,
        old_levels: list[MembershipLevel],
    ) -> None:
        self._coordinator.capture_old_levels(uow, user_id, old_levels)

    async def checkout(
        self,
        uow: UnitOfWork,
        user_id: int,
        order: MembershipOrder,
    ) -> ResolvedEvent | None:
        payload = {
            "level_id": order.membership_id,
            "level_name": await self._level_name(order.membership_id),
            "order_total": order.total,
            "payment_type": order.payment_type,
        }
        return await self._coordinator.on_checkout(uow, user_id, payload)

    async def level_changed(
        self,
        uow: UnitOfWork,
        user_id: int,
        level_id: int,
    ) -> ResolvedEvent | None:
        level_name = await self._level_name(level_id) if level_id > 0 else ""
        return await self._coordinator.on_level_changed(uow, user_id, level_id, level_name)

    async def cancelled(self, uow: UnitOfWork, user_id: int) -> ResolvedEvent | None:
        return await self._coordinator.on_cancelled(uow, user_id)

    async def payment_completed(self, order: MembershipOrder) -> ResolvedEvent | None:
        return await self._coordinator.notify(
            PAYMENT_COMPLETED,
            order.user_id,
            {
                "order_total": order.total,
                "level_name": await self._level_name(order.membership_id),
            },
        )

    async def payment_failed(self, order: MembershipOrder) -> ResolvedEvent | None:
        return await self._coordinator.notify(
            PAYMENT_FAILED,
            order.user_id,
            {"level_name": await self._level_name(order.membership_id)},
        )

    async def expired(self, user_id: int, level_id: int) -> ResolvedEvent | None:
        return await self._coordinator.notify(
            EXPIRED,
            user_id,
            {"level_id": level_id, "level_name": await self._level_name(level_id)},
        )
