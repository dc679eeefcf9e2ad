"""Batch sync engine -- resumable backfill of historical records.

State machine per sync type: idle -> running -> done | error.

- start(): cancels any scheduled-but-unrun page for the type, resets
  progress to running and schedules page 0. Returns immediately.
- run_page(): invoked by the worker. Fetches one page, resolves each record
  with the type's representative event configuration and delivers it
  synchronously, then persists progress and schedules the next page.
- status(): pure read of persisted progress.

Bulk sync bypasses the event coordinator and the delivery queue: each page
is a distinct population, and per-record error accounting needs the
delivery result inline. Progress for every sync type is stored as one
document under SYNC_PROGRESS_KEY (last writer wins).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from src.relay.core.monitoring import sync_records_total
from src.relay.core.store import ConfigStore
from src.relay.delivery.client import EventSender
from src.relay.delivery.queue import deliver_safely
from src.relay.exceptions import (
    RecordSourceUnavailableError,
    SchedulerUnavailableError,
    UnknownSyncTypeError,
)
from src.relay.host.directory import HostDirectory
from src.relay.mapping.resolver import FieldResolver
from src.relay.mapping.schemas import ResolvedEvent
from src.relay.scheduling.scheduler import SYNC_PAGE_TASK, TaskScheduler
from src.relay.sync.schemas import (
    REPRESENTATIVE_EVENTS,
    RecordPage,
    SyncProgress,
    SyncStatus,
    SyncType,
)
from src.relay.sync.sources import RecordSource

logger = structlog.get_logger(__name__)

SYNC_PROGRESS_KEY = "sync_progress"

QUEUED_MESSAGE = "Queued, waiting for background processing to start..."


def parse_sync_type(value: str | SyncType) -> SyncType:
    """Convert a raw sync type string, raising UnknownSyncTypeError."""
    try:
        return SyncType(value)
    except ValueError:
        raise UnknownSyncTypeError(str(value)) from None


def progress_message(status: SyncStatus, offset: int, total: int, errors: int) -> str:
    """Human-readable progress line shown to the polling caller."""
    suffix = f" ({errors} failed, check error log)" if errors > 0 else ""
    if status == SyncStatus.DONE:
        return f"Done: synced {total} records{suffix}."
    return f"Synced {offset} of {total}...{suffix}"


class BatchSyncEngine:
    """Drives paged bulk sync for each SyncType.

    Args:
        store: ConfigStore holding the progress document.
        resolver: FieldResolver used with the representative event type.
        directory: HostDirectory for user identity (email) lookups.
        sender: EventSender called synchronously per record.
        scheduler: TaskScheduler for page chaining. None disables start().
        sources: RecordSource per SyncType.
        batch_size: Records per page.
        delay_ms: Pause after each delivered record.
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        store: ConfigStore,
        resolver: FieldResolver,
        directory: HostDirectory,
        sender: EventSender,
        scheduler: TaskScheduler | None,
        sources: dict[SyncType, RecordSource],
        batch_size: int = 25,
        delay_ms: int = 250,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._directory = directory
        self._sender = sender
        self._scheduler = scheduler
        self._sources = sources
        self._batch_size = batch_size
        self._delay = delay_ms / 1000
        self._sleep = sleep

    # ── Progress persistence ──────────────────────────────────────────────

    async def _load_all(self) -> dict[str, Any]:
        raw = await self._store.get(SYNC_PROGRESS_KEY)
        return raw if isinstance(raw, dict) else {}

    async def _save(self, sync_type: SyncType, progress: SyncProgress) -> None:
        # Read-modify-write without CAS; page chains never overlap per type
        all_progress = await self._load_all()
        all_progress[sync_type.value] = progress.model_dump(mode="json")
        await self._store.set(SYNC_PROGRESS_KEY, all_progress)

    async def status(self, sync_type: str | SyncType) -> SyncProgress:
        """Return persisted progress, or an idle sentinel if never started."""
        sync_type = parse_sync_type(sync_type)
        stored = (await self._load_all()).get(sync_type.value)
        if not stored:
            return SyncProgress(status=SyncStatus.IDLE)
        return SyncProgress.model_validate(stored)

    # ── Control ───────────────────────────────────────────────────────────

    async def start(self, sync_type: str | SyncType, filter_id: int = 0) -> SyncProgress:
        """Begin (or restart) a sync run and schedule its first page.

        Raises:
            UnknownSyncTypeError: If sync_type is not a SyncType.
            SchedulerUnavailableError: If no scheduler is configured.
        """
        sync_type = parse_sync_type(sync_type)
        if self._scheduler is None:
            raise SchedulerUnavailableError(
                "Background scheduling is not available; bulk sync cannot run."
            )
        filter_id = max(0, int(filter_id))

        cancelled = await self._scheduler.cancel(SYNC_PAGE_TASK, {"type": sync_type.value})

        progress = SyncProgress(
            status=SyncStatus.RUNNING,
            total=0,
            offset=0,
            filter_id=filter_id,
            errors=0,
            message=QUEUED_MESSAGE,
        )
        await self._save(sync_type, progress)
        await self._schedule_page(sync_type, 0, filter_id)

        logger.info(
            "sync.started",
            sync_type=sync_type.value,
            filter_id=filter_id,
            cancelled_pages=cancelled,
        )
        return progress

    async def _schedule_page(self, sync_type: SyncType, offset: int, filter_id: int) -> None:
        if self._scheduler is None:
            raise SchedulerUnavailableError(
                f"Cannot schedule {sync_type.value} page at offset {offset}: no scheduler."
            )
        await self._scheduler.schedule(
            SYNC_PAGE_TASK,
            {"type": sync_type.value, "offset": offset, "filter_id": filter_id},
        )

    async def query_eligible_records(
        self,
        sync_type: SyncType,
        filter_id: int,
        offset: int,
        limit: int,
    ) -> RecordPage:
        source = self._sources.get(sync_type)
        if source is None:
            raise RecordSourceUnavailableError(f"No record source for '{sync_type.value}'")
        return await source.fetch_page(filter_id, offset, limit)

    # ── Page execution ────────────────────────────────────────────────────

    async def run_page(
        self,
        sync_type: str | SyncType,
        offset: int = 0,
        filter_id: int = 0,
    ) -> SyncProgress:
        """Process one page and persist the resulting progress.

        Never raises for delivery or population failures: they are recorded
        in the returned (and persisted) progress.

        Returns:
            The progress after this page. ``offset`` is where the next page
            starts.
        """
        sync_type = parse_sync_type(sync_type)
        offset = max(0, int(offset))
        filter_id = max(0, int(filter_id))
        previous = await self.status(sync_type)

        try:
            page = await self.query_eligible_records(
                sync_type, filter_id, offset, self._batch_size
            )
        except RecordSourceUnavailableError as exc:
            return await self._fail(sync_type, previous, filter_id, str(exc))
        except Exception as exc:
            logger.exception("sync.query_failed", sync_type=sync_type.value, offset=offset)
            return await self._fail(sync_type, previous, filter_id, str(exc))

        event_key = REPRESENTATIVE_EVENTS[sync_type]
        page_errors = 0
        for record in page.records:
            if not await self._sync_record(sync_type, event_key, record.user_id, record.payload):
                page_errors += 1

        new_offset = offset + len(page.records)
        # Page 0 begins a new run; later pages accumulate
        errors = (previous.errors if offset > 0 else 0) + page_errors
        # An empty page means the population shrank mid-run
        done = new_offset >= page.total or not page.records
        status = SyncStatus.DONE if done else SyncStatus.RUNNING

        progress = SyncProgress(
            status=status,
            total=page.total,
            offset=new_offset,
            filter_id=filter_id,
            errors=errors,
            message=progress_message(status, new_offset, page.total, errors),
        )
        await self._save(sync_type, progress)

        if not done and self._scheduler is not None:
            await self._schedule_page(sync_type, new_offset, filter_id)

        logger.info(
            "sync.page_complete",
            sync_type=sync_type.value,
            offset=new_offset,
            total=page.total,
            page_errors=page_errors,
            done=done,
        )
        return progress

    async def _sync_record(
        self,
        sync_type: SyncType,
        event_key: str,
        user_id: int,
        payload: dict[str, Any],
    ) -> bool:
        """Resolve and deliver one record. Returns False on delivery failure.

        Records without a resolvable identity are skipped and count as success.
        """
        identity = await self._directory.get_user_identity(user_id)
        if identity is None or not identity.email:
            sync_records_total.labels(sync_type=sync_type.value, status="skipped").inc()
            return True

        try:
            resolved = await self._resolver.resolve(event_key, user_id, payload)
        except Exception as exc:
            logger.error(
                "sync.resolve_failed",
                sync_type=sync_type.value,
                user_id=user_id,
                error=str(exc),
            )
            sync_records_total.labels(sync_type=sync_type.value, status="error").inc()
            return False

        if not resolved.event_name:
            sync_records_total.labels(sync_type=sync_type.value, status="skipped").inc()
            return True

        event = ResolvedEvent(
            user_id=user_id,
            event_name=resolved.event_name,
            email=identity.email,
            payload=payload,
            attributes=resolved.attributes,
            event_key=event_key,
        )
        result = await deliver_safely(self._sender, event, mode="sync")
        sync_records_total.labels(
            sync_type=sync_type.value,
            status="success" if result.ok else "error",
        ).inc()

        await self._sleep(self._delay)
        return result.ok

    async def _fail(
        self,
        sync_type: SyncType,
        previous: SyncProgress,
        filter_id: int,
        reason: str,
    ) -> SyncProgress:
        progress = SyncProgress(
            status=SyncStatus.ERROR,
            total=previous.total,
            offset=previous.offset,
            filter_id=filter_id,
            errors=previous.errors,
            message=reason,
        )
        await self._save(sync_type, progress)
        logger.error("sync.failed", sync_type=sync_type.value, reason=reason)
        return progress

    # ── Worker entry point ────────────────────────────────────────────────

    async def run_scheduled_page(self, args: dict[str, Any]) -> None:
        """Worker handler for ``relay.sync_page`` tasks."""
        await self.run_page(
            args.get("type", SyncType.PRIMARY.value),
            int(args.get("offset", 0)),
            int(args.get("filter_id", 0)),
        )
