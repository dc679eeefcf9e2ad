"""Host notification schemas.

Each host hook the relay listens to has one notification model, tagged by
``hook``. A POST /notifications request carries an ordered list of them;
together they form one unit of work.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from src.relay.host.directory import MembershipLevel


class MembershipOrder(BaseModel):
    """The subset of a membership order the relay reads."""

    user_id: int = 0
    membership_id: int = 0
    total: float = 0
    payment_type: str = ""


# ── Membership hooks ─────────────────────────────────────────────────────────


class BeforeLevelChangeNotification(BaseModel):
    """Fired before a level change with the user's current levels."""

    hook: Literal["membership.before_level_change"] = "membership.before_level_change"
    user_id: int
    level_id: int = 0
    old_levels: list[MembershipLevel] = Field(default_factory=list)


class CheckoutNotification(BaseModel):
    hook: Literal["membership.checkout"] = "membership.checkout"
    user_id: int
    order: MembershipOrder = Field(default_factory=MembershipOrder)


class LevelChangedNotification(BaseModel):
    """Fired after any level assignment. level_id 0 means cancelled."""

    hook: Literal["membership.level_changed"] = "membership.level_changed"
    user_id: int
    level_id: int


class CancelProcessedNotification(BaseModel):
    hook: Literal["membership.cancelled"] = "membership.cancelled"
    user_id: int


class PaymentCompletedNotification(BaseModel):
    hook: Literal["membership.payment_completed"] = "membership.payment_completed"
    order: MembershipOrder


class PaymentFailedNotification(BaseModel):
    hook: Literal["membership.payment_failed"] = "membership.payment_failed"
    order: MembershipOrder


class MembershipExpiredNotification(BaseModel):
    hook: Literal["membership.expired"] = "membership.expired"
    user_id: int
    level_id: int


# ── Course hooks ─────────────────────────────────────────────────────────────


class EnrolmentChangedNotification(BaseModel):
    hook: Literal["course.enrolment_changed"] = "course.enrolment_changed"
    user_id: int
    course_id: int
    is_enrolled: bool


class CourseStartedNotification(BaseModel):
    hook: Literal["course.started"] = "course.started"
    user_id: int
    course_id: int


class CourseCompletedNotification(BaseModel):
    hook: Literal["course.completed"] = "course.completed"
    user_id: int
    course_id: int


class LessonCompletedNotification(BaseModel):
    hook: Literal["lesson.completed"] = "lesson.completed"
    user_id: int
    lesson_id: int


class QuizSubmittedNotification(BaseModel):
    hook: Literal["quiz.submitted"] = "quiz.submitted"
    user_id: int
    quiz_id: int
    grade: float
    quiz_pass_percentage: float
    quiz_grade_type: str = ""


HostNotification = Annotated[
    Union[
        BeforeLevelChangeNotification,
        CheckoutNotification,
        LevelChangedNotification,
        CancelProcessedNotification,
        PaymentCompletedNotification,
        PaymentFailedNotification,
        MembershipExpiredNotification,
        EnrolmentChangedNotification,
        CourseStartedNotification,
        CourseCompletedNotification,
        LessonCompletedNotification,
        QuizSubmittedNotification,
    ],
    Field(discriminator="hook"),
]


class NotificationBatch(BaseModel):
    """One unit of work: notifications in the order the host fired them."""

    notifications: list[HostNotification] = Field(default_factory=list)
