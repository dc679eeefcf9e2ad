"""Notification dispatcher -- runs one batch of host notifications as a unit of work.

Notifications are dispatched in order. The coordinator flush runs exactly
once when the batch ends, including when a notification fails midway.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog

from src.relay.coordinator import EventCoordinator, UnitOfWork
from src.relay.hooks.courses import CourseHooks
from src.relay.hooks.membership import MembershipHooks
from src.relay.hooks.schemas import (
    BeforeLevelChangeNotification,
    CancelProcessedNotification,
    CheckoutNotification,
    CourseCompletedNotification,
    CourseStartedNotification,
    EnrolmentChangedNotification,
    LessonCompletedNotification,
    LevelChangedNotification,
    MembershipExpiredNotification,
    PaymentCompletedNotification,
    PaymentFailedNotification,
    QuizSubmittedNotification,
)
from src.relay.host.directory import HostDirectory
from src.relay.mapping.schemas import ResolvedEvent

logger = structlog.get_logger(__name__)

_Handler = Callable[[UnitOfWork, Any], Awaitable[ResolvedEvent | None]]


class NotificationDispatcher:
    """Routes host notifications to the membership and course adapters.

    Args:
        coordinator: EventCoordinator owning the unit of work.
        directory: HostDirectory passed to the adapters.
    """

    def __init__(self, coordinator: EventCoordinator, directory: HostDirectory) -> None:
        self._coordinator = coordinator
        self.membership = MembershipHooks(coordinator, directory)
        self.courses = CourseHooks(coordinator, directory)
        self._handlers: dict[type, _Handler] = {
            BeforeLevelChangeNotification: self._before_level_change,
            CheckoutNotification: lambda uow, n: self.membership.checkout(uow, n.user_id, n.order),
            LevelChangedNotification: lambda uow, n: self.membership.level_changed(
                uow, n.user_id, n.level_id
            ),
            CancelProcessedNotification: lambda uow, n: self.membership.cancelled(uow, n.user_id),
            PaymentCompletedNotification: lambda uow, n: self.membership.payment_completed(n.order),
            PaymentFailedNotification: lambda uow, n: self.membership.payment_failed(n.order),
            MembershipExpiredNotification: lambda uow, n: self.membership.expired(
                n.user_id, n.level_id
            ),
            EnrolmentChangedNotification: lambda uow, n: self.courses.enrolment_changed(
                n.user_id, n.course_id, n.is_enrolled
            ),
            CourseStartedNotification: lambda uow, n: self.courses.course_started(
                n.user_id, n.course_id
            ),
            CourseCompletedNotification: lambda uow, n: self.courses.course_completed(
                n.user_id, n.course_id
            ),
            LessonCompletedNotification: lambda uow, n: self.courses.lesson_completed(
                n.user_id, n.lesson_id
            ),
            QuizSubmittedNotification: lambda uow, n: self.courses.quiz_submitted(
                n.user_id, n.quiz_id, n.grade, n.quiz_pass_percentage, n.quiz_grade_type
            ),
        }

    async def _before_level_change(
        self,
        uow: UnitOfWork,
        notification: BeforeLevelChangeNotification,
    ) -> None:
        self.membership.before_level_change(uow, notification.user_id, notification.old_levels)

    async def dispatch(self, uow: UnitOfWork, notification: Any) -> ResolvedEvent | None:
        """Dispatch one notification within an open unit of work."""
        handler = self._handlers.get(type(notification))
        if handler is None:
            raise TypeError(f"Unhandled notification type: {type(notification).__name__}")
        return await handler(uow, notification)

    async def process(self, notifications: Sequence[Any]) -> list[ResolvedEvent]:
        """Run a batch of notifications as one unit of work.

        Returns:
            Every event enqueued, immediate ones first, then those released
            by the flush.
        """
        enqueued: list[ResolvedEvent] = []
        uow = UnitOfWork()
        try:
            for notification in notifications:
                event = await self.dispatch(uow, notification)
                if event is not None:
                    enqueued.append(event)
        finally:
            enqueued.extend(await self._coordinator.flush(uow))

        logger.info(
            "notifications.processed",
            uow_id=uow.id,
            notifications=len(notifications),
            enqueued=len(enqueued),
        )
        return enqueued
