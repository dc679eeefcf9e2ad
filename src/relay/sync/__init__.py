"""Bulk sync: resumable paged backfill of historical records.

Exports:
    BatchSyncEngine: start / run_page / status state machine
    RecordSource: population capability per sync type
    SyncProgress, SyncStatus, SyncType: progress schemas
"""

from src.relay.sync.engine import BatchSyncEngine, parse_sync_type
from src.relay.sync.schemas import (
    REPRESENTATIVE_EVENTS,
    EligibleRecord,
    RecordPage,
    SyncProgress,
    SyncStatus,
    SyncType,
)
from src.relay.sync.sources import RecordSource

__all__ = [
    "REPRESENTATIVE_EVENTS",
    "BatchSyncEngine",
    "EligibleRecord",
    "RecordPage",
    "RecordSource",
    "SyncProgress",
    "SyncStatus",
    "SyncType",
    "parse_sync_type",
]
