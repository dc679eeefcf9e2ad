"""Per-unit-of-work coordinator state.

One UnitOfWork covers one logical host operation (one checkout, one
admin level edit). It owns every piece of transient state the coordinator
needs between notifications, so nothing leaks across unrelated operations:

- old_levels: levels captured before a change, per user
- pending_level_changes: level changes held until flush
- checkout_user_ids: users who checked out in this unit of work
- cancelled_user_ids: users whose cancellation was already delivered
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from src.relay.host.directory import MembershipLevel


@dataclass(frozen=True)
class PendingLevelChange:
    """A level change deferred until the unit of work flushes."""

    user_id: int
    level_id: int
    new_level_name: str
    old_level_names: str


@dataclass
class UnitOfWork:
    """Transient coordinator state for one logical host operation."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    old_levels: dict[int, list[MembershipLevel]] = field(default_factory=dict)
    pending_level_changes: list[PendingLevelChange] = field(default_factory=list)
    checkout_user_ids: set[int] = field(default_factory=set)
    cancelled_user_ids: set[int] = field(default_factory=set)
    flushed: bool = False

    def clear(self) -> None:
        self.old_levels.clear()
        self.pending_level_changes.clear()
        self.checkout_user_ids.clear()
        self.cancelled_user_ids.clear()
