"""Schemas for bulk sync progress and record pages."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.relay.mapping.definitions import CHECKOUT, COURSE_ENROLLED


class SyncType(str, Enum):
    """Bulk sync populations."""

    PRIMARY = "primary"  # active memberships
    SECONDARY = "secondary"  # course enrolments


class SyncStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


# Event type whose configuration is replayed for historical records
REPRESENTATIVE_EVENTS: dict[SyncType, str] = {
    SyncType.PRIMARY: CHECKOUT,
    SyncType.SECONDARY: COURSE_ENROLLED,
}


class SyncProgress(BaseModel):
    """Persisted progress of one sync type."""

    status: SyncStatus = SyncStatus.IDLE
    total: int = 0
    offset: int = 0
    filter_id: int = 0
    errors: int = 0
    message: str = ""


class EligibleRecord(BaseModel):
    """One historical record to replay as a synthetic event."""

    user_id: int
    record_id: str
    payload: dict[str, Any] = Field(default_factory=dict)


class RecordPage(BaseModel):
    """A page of eligible records plus the population total."""

    records: list[EligibleRecord] = Field(default_factory=list)
    total: int = 0
