"""Course hook adapters: enrolment, course progress, lessons and quizzes."""

from __future__ import annotations

from src.relay.coordinator import EventCoordinator
from src.relay.host.directory import HostDirectory
from src.relay.mapping.definitions import (
    COURSE_COMPLETED,
    COURSE_ENROLLED,
    COURSE_STARTED,
    COURSE_UNENROLLED,
    LESSON_COMPLETED,
    QUIZ_SUBMITTED,
)
from src.relay.mapping.schemas import ResolvedEvent


class CourseHooks:
    """Adapters for course notifications. All are plain passthrough events.

    Args:
        coordinator: EventCoordinator receiving the events.
        directory: HostDirectory for titles and lesson parents.
    """

    def __init__(self, coordinator: EventCoordinator, directory: HostDirectory) -> None:
        self._coordinator = coordinator
        self._directory = directory

    async def _course_payload(self, course_id: int) -> dict:
        return {
            "course_id": course_id,
            "course_title": await self._directory.get_post_title(course_id),
        }

    async def enrolment_changed(
        self,
        user_id: int,
        course_id: int,
        is_enrolled: bool,
    ) -> ResolvedEvent | None:
        event_key = COURSE_ENROLLED if is_enrolled else COURSE_UNENROLLED
        return await self._coordinator.notify(
            event_key, user_id, await self._course_payload(course_id)
        )

    async def course_started(self, user_id: int, course_id: int) -> ResolvedEvent | None:
        return await self._coordinator.notify(
            COURSE_STARTED, user_id, await self._course_payload(course_id)
        )

    async def course_completed(self, user_id: int, course_id: int) -> ResolvedEvent | None:
        return await self._coordinator.notify(
            COURSE_COMPLETED, user_id, await self._course_payload(course_id)
        )

    async def lesson_completed(self, user_id: int, lesson_id: int) -> ResolvedEvent | None:
        return await self._coordinator.notify(
            LESSON_COMPLETED,
            user_id,
            {
                "lesson_id": lesson_id,
                "lesson_title": await self._directory.get_post_title(lesson_id),
                "course_id": await self._directory.get_lesson_course(lesson_id),
            },
        )

    async def quiz_submitted(
        self,
        user_id: int,
        quiz_id: int,
        grade: float,
        quiz_pass_percentage: float,
        quiz_grade_type: str,
    ) -> ResolvedEvent | None:
        return await self._coordinator.notify(
            QUIZ_SUBMITTED,
            user_id,
            {
                "quiz_id": quiz_id,
                "grade": grade,
                "pass": grade >= quiz_pass_percentage,
                "quiz_pass_percentage": quiz_pass_percentage,
                "quiz_grade_type": quiz_grade_type,
            },
        )
