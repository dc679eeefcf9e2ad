"""Host hook adapters and notification dispatch.

Exports:
    NotificationDispatcher: runs a notification batch as one unit of work
    MembershipHooks, CourseHooks: per-domain adapters
    HostNotification, NotificationBatch: tagged notification schemas
"""

from src.relay.hooks.courses import CourseHooks
from src.relay.hooks.dispatcher import NotificationDispatcher
from src.relay.hooks.membership import MembershipHooks
from src.relay.hooks.schemas import HostNotification, MembershipOrder, NotificationBatch

__all__ = [
    "CourseHooks",
    "HostNotification",
    "MembershipHooks",
    "MembershipOrder",
    "NotificationBatch",
    "NotificationDispatcher",
]
