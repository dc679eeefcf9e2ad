"""Shared fixtures and in-memory test doubles for relay tests.

Provides:
- FakeHostDirectory: HostDirectory over plain dicts
- RecordingSender: EventSender that records calls and can fail per user
- InMemoryTaskScheduler: TaskScheduler over a list
- ListRecordSource: RecordSource over a fixed list of records
- Fixtures wiring them into RelayServices and a FastAPI test client
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.relay.config import Settings
from src.relay.core.store import InMemoryConfigStore
from src.relay.delivery.client import DeliveryResult, EventSender
from src.relay.host.directory import HostDirectory, MembershipLevel, UserIdentity
from src.relay.scheduling.scheduler import ScheduledTask, TaskScheduler
from src.relay.services import RelayServices, assemble_services
from src.relay.sync.schemas import EligibleRecord, RecordPage, SyncType
from src.relay.sync.sources import RecordSource


# ── Test Doubles ─────────────────────────────────────────────────────────────


class FakeHostDirectory(HostDirectory):
    """In-memory HostDirectory for testing without a host database."""

    def __init__(self) -> None:
        self.users: dict[int, str] = {}
        self.attributes: dict[tuple[int, str], str] = {}
        self.levels: dict[int, str] = {}
        self.titles: dict[int, str] = {}
        self.lesson_courses: dict[int, int] = {}
        self.condition_values: dict[str, list[str]] = {}

    def add_user(self, user_id: int, email: str, **attributes: str) -> None:
        self.users[user_id] = email
        for name, value in attributes.items():
            self.attributes[(user_id, name)] = value

    async def get_user_identity(self, user_id: int) -> UserIdentity | None:
        email = self.users.get(user_id)
        if email is None:
            return None
        return UserIdentity(id=user_id, email=email)

    async def get_user_attribute(self, user_id: int, attribute_name: str) -> str:
        return self.attributes.get((user_id, attribute_name), "")

    async def get_level(self, level_id: int) -> MembershipLevel | None:
        if level_id not in self.levels:
            return None
        return MembershipLevel(id=level_id, name=self.levels[level_id])

    async def get_post_title(self, post_id: int) -> str:
        return self.titles.get(post_id, "")

    async def get_lesson_course(self, lesson_id: int) -> int:
        return self.lesson_courses.get(lesson_id, 0)

    async def list_condition_values(self) -> dict[str, list[str]]:
        return self.condition_values


class RecordingSender(EventSender):
    """EventSender that records every call.

    Users in ``fail_for`` get a failed DeliveryResult; users in ``raise_for``
    make send_event raise.
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.fail_for: set[int] = set()
        self.raise_for: set[int] = set()

    async def send_event(
        self,
        user_id: int,
        event_name: str,
        email: str,
        payload: dict[str, Any],
        attributes: dict[str, Any],
    ) -> DeliveryResult:
        self.calls.append(
            {
                "user_id": user_id,
                "event_name": event_name,
                "email": email,
                "payload": payload,
                "attributes": attributes,
            }
        )
        if user_id in self.raise_for:
            raise RuntimeError(f"boom for user {user_id}")
        if user_id in self.fail_for:
            return DeliveryResult.failure("rejected", status_code=422)
        return DeliveryResult.success(200)

    @property
    def event_names(self) -> list[str]:
        return [c["event_name"] for c in self.calls]


class InMemoryTaskScheduler(TaskScheduler):
    """TaskScheduler over a plain list, for tests without Redis."""

    def __init__(self) -> None:
        self.tasks: list[ScheduledTask] = []

    async def schedule(
        self,
        task_name: str,
        args: dict[str, Any],
        run_at: float | None = None,
    ) -> ScheduledTask:
        task = ScheduledTask(
            task_name=task_name,
            args=args,
            run_at=run_at if run_at is not None else time.time(),
        )
        self.tasks.append(task)
        return task

    async def cancel(self, task_name: str, match_args: dict[str, Any] | None = None) -> int:
        keep = [t for t in self.tasks if not t.matches(task_name, match_args)]
        removed = len(self.tasks) - len(keep)
        self.tasks = keep
        return removed

    async def claim_due(self, limit: int = 10, now: float | None = None) -> list[ScheduledTask]:
        cutoff = now if now is not None else time.time()
        due = [t for t in self.tasks if t.run_at <= cutoff][:limit]
        self.tasks = [t for t in self.tasks if t not in due]
        return due

    async def reschedule(self, task: ScheduledTask, delay: float) -> ScheduledTask:
        retry = task.model_copy(
            update={"attempt": task.attempt + 1, "run_at": time.time() + delay}
        )
        self.tasks.append(retry)
        return retry

    def named(self, task_name: str) -> list[ScheduledTask]:
        return [t for t in self.tasks if t.task_name == task_name]


class ListRecordSource(RecordSource):
    """RecordSource over a fixed, already ordered list."""

    def __init__(self, records: list[EligibleRecord] | None = None) -> None:
        self.records = records or []
        self.calls: list[tuple[int, int, int]] = []

    async def fetch_page(self, filter_id: int, offset: int, limit: int) -> RecordPage:
        self.calls.append((filter_id, offset, limit))
        return RecordPage(
            records=self.records[offset : offset + limit],
            total=len(self.records),
        )


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        BENTO_SITE_KEY="site-uuid",
        BENTO_PUBLISHABLE_KEY="pub",
        BENTO_SECRET_KEY="secret",
        SYNC_BATCH_SIZE=2,
        SYNC_DELAY_MS=0,
        ADMIN_API_KEY="",
    )


@pytest.fixture
def store() -> InMemoryConfigStore:
    return InMemoryConfigStore()


@pytest.fixture
def directory() -> FakeHostDirectory:
    directory = FakeHostDirectory()
    directory.add_user(1, "alice@example.com", first_name="Alice")
    directory.add_user(2, "bob@example.com", first_name="Bob")
    directory.levels.update({1: "Silver", 2: "Gold"})
    return directory


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def scheduler() -> InMemoryTaskScheduler:
    return InMemoryTaskScheduler()


@pytest.fixture
def primary_source() -> ListRecordSource:
    return ListRecordSource()


@pytest.fixture
def secondary_source() -> ListRecordSource:
    return ListRecordSource()


@pytest.fixture
def services(
    settings: Settings,
    store: InMemoryConfigStore,
    directory: FakeHostDirectory,
    sender: RecordingSender,
    scheduler: InMemoryTaskScheduler,
    primary_source: ListRecordSource,
    secondary_source: ListRecordSource,
) -> RelayServices:
    return assemble_services(
        settings=settings,
        store=store,
        directory=directory,
        sender=sender,
        scheduler=scheduler,
        sources={
            SyncType.PRIMARY: primary_source,
            SyncType.SECONDARY: secondary_source,
        },
    )


@pytest_asyncio.fixture
async def client(services: RelayServices) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against an app wired with the test services."""
    from src.relay.main import create_app

    app = create_app(services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def enable_event(services: RelayServices):
    """Async helper saving settings that enable one event type.

    Usage: ``await enable_event("checkout", "$Checkout", [rule, ...])``
    """

    async def _enable(
        event_key: str,
        event_name: str = "",
        mapping_rules: list[dict[str, Any]] | None = None,
    ) -> None:
        raw = await services.store.get("settings") or {}
        events = dict(raw.get("events", {}))
        events[event_key] = {
            "enabled": True,
            "event_name": event_name,
            "mapping_rules": mapping_rules or [],
        }
        await services.settings_repo.save(events)

    return _enable
