"""Service container -- wires the relay object graph.

Both the API process and the worker build the same graph:

    ConfigStore -> SettingsRepository -> FieldResolver
    HostDirectory (identity, attributes) --^
    EventSender -> DeliveryQueue (+ TaskScheduler) -> EventCoordinator
    EventCoordinator -> NotificationDispatcher
    BatchSyncEngine (store, resolver, directory, sender, scheduler, sources)

assemble_services() takes already-built collaborators so tests can swap
any of them; build_services() creates the production ones from Settings.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from src.relay.config import Settings, get_settings
from src.relay.coordinator import EventCoordinator
from src.relay.core.database import close_db, get_session_factory
from src.relay.core.redis import close_redis, get_redis_pool
from src.relay.core.store import ConfigStore, RedisConfigStore
from src.relay.delivery import BentoClient, DeliveryQueue, EventSender
from src.relay.hooks import NotificationDispatcher
from src.relay.host.directory import HostDirectory
from src.relay.host.sql import SqlCourseRecordSource, SqlHostDirectory, SqlMembershipRecordSource
from src.relay.mapping import FieldResolver, SettingsRepository
from src.relay.scheduling import (
    DELIVER_EVENT_TASK,
    SYNC_PAGE_TASK,
    DeadLetterQueue,
    RedisTaskScheduler,
    TaskScheduler,
    TaskWorker,
)
from src.relay.sync import BatchSyncEngine, RecordSource, SyncType

logger = structlog.get_logger(__name__)


@dataclass
class RelayServices:
    """Every long-lived relay component, built once per process."""

    settings: Settings
    store: ConfigStore
    settings_repo: SettingsRepository
    directory: HostDirectory
    resolver: FieldResolver
    sender: EventSender
    scheduler: TaskScheduler | None
    queue: DeliveryQueue
    coordinator: EventCoordinator
    dispatcher: NotificationDispatcher
    sync_engine: BatchSyncEngine
    dlq: DeadLetterQueue | None = None


def assemble_services(
    settings: Settings,
    store: ConfigStore,
    directory: HostDirectory,
    sender: EventSender,
    scheduler: TaskScheduler | None,
    sources: dict[SyncType, RecordSource],
    dlq: DeadLetterQueue | None = None,
) -> RelayServices:
    """Wire the relay graph from its leaf collaborators.

    A None scheduler selects inline delivery and disables bulk sync start.
    """
    settings_repo = SettingsRepository(store)
    resolver = FieldResolver(settings_repo, directory)
    queue = DeliveryQueue(sender, scheduler)
    coordinator = EventCoordinator(settings_repo, resolver, directory, queue)
    dispatcher = NotificationDispatcher(coordinator, directory)
    sync_engine = BatchSyncEngine(
        store=store,
        resolver=resolver,
        directory=directory,
        sender=sender,
        scheduler=scheduler,
        sources=sources,
        batch_size=settings.SYNC_BATCH_SIZE,
        delay_ms=settings.SYNC_DELAY_MS,
    )
    return RelayServices(
        settings=settings,
        store=store,
        settings_repo=settings_repo,
        directory=directory,
        resolver=resolver,
        sender=sender,
        scheduler=scheduler,
        queue=queue,
        coordinator=coordinator,
        dispatcher=dispatcher,
        sync_engine=sync_engine,
        dlq=dlq,
    )


def build_services(settings: Settings | None = None) -> RelayServices:
    """Build production services: Redis store and scheduler, SQL host, Bento client."""
    settings = settings or get_settings()
    redis = get_redis_pool()
    session_factory = get_session_factory()
    prefix = settings.HOST_TABLE_PREFIX

    scheduler = RedisTaskScheduler(redis) if settings.ASYNC_DELIVERY else None
    if scheduler is None:
        logger.warning("services.async_delivery_disabled")

    services = assemble_services(
        settings=settings,
        store=RedisConfigStore(redis),
        directory=SqlHostDirectory(session_factory, prefix),
        sender=BentoClient.from_settings(settings),
        scheduler=scheduler,
        sources={
            SyncType.PRIMARY: SqlMembershipRecordSource(session_factory, prefix),
            SyncType.SECONDARY: SqlCourseRecordSource(session_factory, prefix),
        },
        dlq=DeadLetterQueue(redis),
    )

    if not settings.bento_configured():
        logger.warning("services.bento_not_configured")
    return services


def build_worker(services: RelayServices) -> TaskWorker:
    """Create a TaskWorker with the relay task handlers registered.

    Raises:
        RuntimeError: If the services have no scheduler to poll.
    """
    if services.scheduler is None:
        raise RuntimeError("Worker requires a task scheduler (ASYNC_DELIVERY=true).")

    worker = TaskWorker(
        services.scheduler,
        dlq=services.dlq,
        poll_interval=services.settings.WORKER_POLL_INTERVAL,
    )

    async def deliver_event(args: dict) -> None:
        await services.queue.run_queued_event(args)

    worker.register(DELIVER_EVENT_TASK, deliver_event)
    worker.register(SYNC_PAGE_TASK, services.sync_engine.run_scheduled_page)
    return worker


async def close_services(services: RelayServices) -> None:
    """Release network resources held by the services."""
    if isinstance(services.sender, BentoClient):
        await services.sender.aclose()
    await close_db()
    await close_redis()
