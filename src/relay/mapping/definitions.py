"""Canonical catalogue of the event types the relay forwards to Bento."""

from __future__ import annotations

from src.relay.exceptions import UnknownEventTypeError
from src.relay.mapping.schemas import EventDefinition

# ── Event keys ───────────────────────────────────────────────────────────────

CHECKOUT = "checkout"
LEVEL_CHANGED = "level_changed"
CANCELLED = "cancelled"
PAYMENT_COMPLETED = "payment_completed"
PAYMENT_FAILED = "payment_failed"
EXPIRED = "expired"
COURSE_ENROLLED = "course_enrolled"
COURSE_UNENROLLED = "course_unenrolled"
COURSE_STARTED = "course_started"
COURSE_COMPLETED = "course_completed"
LESSON_COMPLETED = "lesson_completed"
QUIZ_SUBMITTED = "quiz_submitted"


_DEFINITIONS: tuple[EventDefinition, ...] = (
    # Membership events
    EventDefinition(
        key=CHECKOUT,
        label="Membership: Member Checkout",
        default_event="$PmproMemberCheckout",
        description="Fires when a member completes checkout (new signup or renewal).",
        payload_keys=("level_id", "level_name", "order_total", "payment_type"),
    ),
    EventDefinition(
        key=LEVEL_CHANGED,
        label="Membership: Level Changed",
        default_event="$PmproLevelChanged",
        description="Fires when a member's active membership level changes.",
        payload_keys=("level_id", "new_level_name", "old_level_names"),
    ),
    EventDefinition(
        key=CANCELLED,
        label="Membership: Cancelled",
        default_event="$PmproCancelled",
        description="Fires when a member's membership is cancelled.",
        payload_keys=("last_level_names",),
    ),
    EventDefinition(
        key=PAYMENT_COMPLETED,
        label="Membership: Recurring Payment Completed",
        default_event="$PmproPaymentCompleted",
        description="Fires when a recurring subscription payment succeeds.",
        payload_keys=("order_total", "level_name"),
    ),
    EventDefinition(
        key=PAYMENT_FAILED,
        label="Membership: Recurring Payment Failed",
        default_event="$PmproPaymentFailed",
        description="Fires when a recurring subscription payment fails.",
        payload_keys=("level_name",),
    ),
    EventDefinition(
        key=EXPIRED,
        label="Membership: Expired",
        default_event="$PmproMembershipExpired",
        description="Fires when a membership expires.",
        payload_keys=("level_id", "level_name"),
    ),
    # Course events
    EventDefinition(
        key=COURSE_ENROLLED,
        label="Courses: Course Enrolled",
        default_event="$SenseiCourseEnrolled",
        description="Fires when a student is enrolled in a course.",
        payload_keys=("course_id", "course_title"),
    ),
    EventDefinition(
        key=COURSE_UNENROLLED,
        label="Courses: Course Unenrolled",
        default_event="$SenseiCourseUnenrolled",
        description="Fires when a student is unenrolled from a course.",
        payload_keys=("course_id", "course_title"),
    ),
    EventDefinition(
        key=COURSE_STARTED,
        label="Courses: Course Started",
        default_event="$SenseiCourseStarted",
        description="Fires when a student starts working through a course.",
        payload_keys=("course_id", "course_title"),
    ),
    EventDefinition(
        key=COURSE_COMPLETED,
        label="Courses: Course Completed",
        default_event="$SenseiCourseCompleted",
        description="Fires when a student completes all lessons in a course.",
        payload_keys=("course_id", "course_title"),
    ),
    EventDefinition(
        key=LESSON_COMPLETED,
        label="Courses: Lesson Completed",
        default_event="$SenseiLessonCompleted",
        description="Fires when a student completes a lesson.",
        payload_keys=("lesson_id", "lesson_title", "course_id"),
    ),
    EventDefinition(
        key=QUIZ_SUBMITTED,
        label="Courses: Quiz Submitted",
        default_event="$SenseiQuizSubmitted",
        description="Fires when a student submits a quiz.",
        payload_keys=("quiz_id", "grade", "pass", "quiz_pass_percentage", "quiz_grade_type"),
    ),
)

EVENT_DEFINITIONS: dict[str, EventDefinition] = {d.key: d for d in _DEFINITIONS}


def default_event_name(event_key: str) -> str:
    """Built-in output name for an event key; unknown keys map to themselves."""
    definition = EVENT_DEFINITIONS.get(event_key)
    return definition.default_event if definition else event_key


def get_definition(event_key: str) -> EventDefinition:
    """Return the catalogue entry for an event key.

    Raises:
        UnknownEventTypeError: If the key is not in the catalogue.
    """
    definition = EVENT_DEFINITIONS.get(event_key)
    if definition is None:
        raise UnknownEventTypeError(event_key)
    return definition
