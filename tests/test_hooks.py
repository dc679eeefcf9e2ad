"""Tests for host notification adapters and the dispatcher.

Covers:
- Membership adapters build checkout, payment and expiry payloads
- Course adapters build enrolment, lesson and quiz payloads
- NotificationBatch parses tagged notifications
- Dispatcher runs a batch as one unit of work and always flushes
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from src.relay.coordinator import UnitOfWork
from src.relay.hooks import MembershipOrder, NotificationBatch
from src.relay.hooks.schemas import (
    CheckoutNotification,
    LevelChangedNotification,
    QuizSubmittedNotification,
)


@pytest.fixture
def dispatcher(services):
    return services.dispatcher


def _queued(scheduler) -> list[dict]:
    return [t.args for t in scheduler.tasks]


# ── Membership Adapters ──────────────────────────────────────────────────────


class TestMembershipHooks:
    async def test_checkout_payload(self, dispatcher, scheduler, enable_event):
        await enable_event("checkout")
        uow = UnitOfWork()
        order = MembershipOrder(user_id=1, membership_id=2, total=49.0, payment_type="stripe")

        event = await dispatcher.membership.checkout(uow, 1, order)

        assert event.payload == {
            "level_id": 2,
            "level_name": "Gold",
            "order_total": 49.0,
            "payment_type": "stripe",
        }
        assert 1 in uow.checkout_user_ids
        assert len(_queued(scheduler)) == 1

    async def test_level_changed_looks_up_level_name(self, dispatcher):
        uow = UnitOfWork()

        await dispatcher.membership.level_changed(uow, 2, 1)

        assert uow.pending_level_changes[0].new_level_name == "Silver"

    async def test_unknown_level_has_empty_name(self, dispatcher):
        uow = UnitOfWork()

        await dispatcher.membership.level_changed(uow, 2, 99)

        assert uow.pending_level_changes[0].new_level_name == ""

    async def test_payment_completed_uses_order_user(self, dispatcher, enable_event):
        await enable_event("payment_completed")

        event = await dispatcher.membership.payment_completed(
            MembershipOrder(user_id=2, membership_id=1, total=10.5)
        )

        assert event.user_id == 2
        assert event.email == "bob@example.com"
        assert event.payload == {"order_total": 10.5, "level_name": "Silver"}

    async def test_payment_failed_payload(self, dispatcher, enable_event):
        await enable_event("payment_failed")

        event = await dispatcher.membership.payment_failed(
            MembershipOrder(user_id=1, membership_id=2)
        )

        assert event.payload == {"level_name": "Gold"}

    async def test_expired_payload(self, dispatcher, enable_event):
        await enable_event("expired")

        event = await dispatcher.membership.expired(1, 2)

        assert event.event_name == "$PmproMembershipExpired"
        assert event.payload == {"level_id": 2, "level_name": "Gold"}


# ── Course Adapters ──────────────────────────────────────────────────────────


class TestCourseHooks:
    async def test_enrolment_changed_picks_event_type(self, dispatcher, directory, enable_event):
        directory.titles[10] = "Intro Course"
        await enable_event("course_enrolled")
        await enable_event("course_unenrolled")

        enrolled = await dispatcher.courses.enrolment_changed(1, 10, True)
        unenrolled = await dispatcher.courses.enrolment_changed(1, 10, False)

        assert enrolled.event_key == "course_enrolled"
        assert unenrolled.event_key == "course_unenrolled"
        assert enrolled.payload == {"course_id": 10, "course_title": "Intro Course"}

    async def test_course_started_and_completed(self, dispatcher, directory, enable_event):
        directory.titles[10] = "Intro Course"
        await enable_event("course_started")
        await enable_event("course_completed")

        started = await dispatcher.courses.course_started(1, 10)
        completed = await dispatcher.courses.course_completed(1, 10)

        assert started.event_name == "$SenseiCourseStarted"
        assert completed.event_name == "$SenseiCourseCompleted"
        assert completed.payload["course_title"] == "Intro Course"

    async def test_lesson_completed_includes_parent_course(
        self, dispatcher, directory, enable_event
    ):
        directory.titles[20] = "Lesson One"
        directory.lesson_courses[20] = 10
        await enable_event("lesson_completed")

        event = await dispatcher.courses.lesson_completed(1, 20)

        assert event.payload == {"lesson_id": 20, "lesson_title": "Lesson One", "course_id": 10}

    @pytest.mark.parametrize(
        ("grade", "expected"),
        [(80.0, True), (70.0, True), (69.9, False)],
    )
    async def test_quiz_pass_flag(self, dispatcher, enable_event, grade, expected):
        await enable_event("quiz_submitted")

        event = await dispatcher.courses.quiz_submitted(1, 30, grade, 70.0, "auto")

        assert event.payload["pass"] is expected
        assert event.payload["quiz_grade_type"] == "auto"

    async def test_quiz_pass_drives_condition(self, dispatcher, enable_event):
        await enable_event(
            "quiz_submitted",
            mapping_rules=[
                {
                    "output_key": "result",
                    "source_kind": "static",
                    "source_value": "passed",
                    "condition_key": "pass",
                    "condition_value": "1",
                }
            ],
        )

        passed = await dispatcher.courses.quiz_submitted(1, 30, 90.0, 70.0, "auto")
        failed = await dispatcher.courses.quiz_submitted(1, 30, 10.0, 70.0, "auto")

        assert passed.attributes == {"result": "passed"}
        assert failed.attributes == {}


# ── Schemas ──────────────────────────────────────────────────────────────────


class TestNotificationBatch:
    def test_parses_tagged_notifications(self):
        batch = NotificationBatch.model_validate(
            {
                "notifications": [
                    {"hook": "membership.checkout", "user_id": 1, "order": {"membership_id": 2}},
                    {"hook": "membership.level_changed", "user_id": 1, "level_id": 2},
                    {
                        "hook": "quiz.submitted",
                        "user_id": 1,
                        "quiz_id": 3,
                        "grade": 50,
                        "quiz_pass_percentage": 60,
                    },
                ]
            }
        )

        kinds = [type(n) for n in batch.notifications]
        assert kinds == [CheckoutNotification, LevelChangedNotification, QuizSubmittedNotification]

    def test_unknown_hook_rejected(self):
        with pytest.raises(ValidationError):
            NotificationBatch.model_validate({"notifications": [{"hook": "nope", "user_id": 1}]})


# ── Dispatcher ───────────────────────────────────────────────────────────────


class TestDispatcher:
    async def test_checkout_batch_delivers_only_checkout(
        self, dispatcher, scheduler, enable_event
    ):
        await enable_event("checkout")
        await enable_event("level_changed")
        batch = NotificationBatch.model_validate(
            {
                "notifications": [
                    {
                        "hook": "membership.before_level_change",
                        "user_id": 1,
                        "old_levels": [{"id": 1, "name": "Silver"}],
                    },
                    {"hook": "membership.level_changed", "user_id": 1, "level_id": 2},
                    {"hook": "membership.checkout", "user_id": 1, "order": {"membership_id": 2}},
                ]
            }
        )

        events = await dispatcher.process(batch.notifications)

        assert [e.event_key for e in events] == ["checkout"]
        assert len(scheduler.tasks) == 1

    async def test_admin_level_edit_delivers_level_change(self, dispatcher, enable_event):
        await enable_event("level_changed")
        batch = NotificationBatch.model_validate(
            {
                "notifications": [
                    {
                        "hook": "membership.before_level_change",
                        "user_id": 2,
                        "old_levels": [{"id": 1, "name": "Silver"}],
                    },
                    {"hook": "membership.level_changed", "user_id": 2, "level_id": 2},
                ]
            }
        )

        events = await dispatcher.process(batch.notifications)

        assert len(events) == 1
        assert events[0].payload == {
            "level_id": 2,
            "new_level_name": "Gold",
            "old_level_names": "Silver",
        }

    async def test_cancel_and_level_zero_deliver_once(self, dispatcher, enable_event):
        await enable_event("cancelled")
        batch = NotificationBatch.model_validate(
            {
                "notifications": [
                    {
                        "hook": "membership.before_level_change",
                        "user_id": 1,
                        "old_levels": [{"id": 2, "name": "Gold"}],
                    },
                    {"hook": "membership.level_changed", "user_id": 1, "level_id": 0},
                    {"hook": "membership.cancelled", "user_id": 1},
                ]
            }
        )

        events = await dispatcher.process(batch.notifications)

        assert [e.event_key for e in events] == ["cancelled"]
        assert events[0].payload == {"last_level_names": "Gold"}

    async def test_scheduler_outage_does_not_abort_batch(
        self, dispatcher, scheduler, sender, enable_event
    ):
        await enable_event("checkout")
        await enable_event("course_completed")
        scheduler.schedule = AsyncMock(side_effect=ConnectionError("redis down"))
        batch = NotificationBatch.model_validate(
            {
                "notifications": [
                    {"hook": "membership.checkout", "user_id": 1, "order": {"membership_id": 2}},
                    {"hook": "course.completed", "user_id": 2, "course_id": 10},
                ]
            }
        )

        events = await dispatcher.process(batch.notifications)

        assert [e.event_key for e in events] == ["checkout", "course_completed"]
        assert [c["user_id"] for c in sender.calls] == [1, 2]

    async def test_flush_runs_when_notification_fails(
        self, dispatcher, scheduler, enable_event
    ):
        await enable_event("level_changed")

        with pytest.raises(TypeError):
            await dispatcher.process(
                [LevelChangedNotification(user_id=2, level_id=1), object()]
            )

        assert len(scheduler.tasks) == 1

    async def test_unhandled_notification_type(self, dispatcher):
        with pytest.raises(TypeError, match="Unhandled notification type"):
            await dispatcher.dispatch(UnitOfWork(), "not-a-notification")
