"""Tests for the SQL host directory and record sources against a real engine.

Runs the production queries on an in-memory SQLite database laid out like
a WordPress site, so column aliases, joins and paging are exercised by a
real SQL engine rather than hand-built rows.

Covers:
- Identity lookup reads aliased columns (upper-case ``ID`` in the schema)
- Attribute, level, post title and lesson-parent lookups
- Condition value suggestions from published posts and levels
- Membership pages: count matches rows, deleted levels excluded, paging
- Course pages: distinct statuses, titles, course filter
- Bulk sync over the membership source ends done with offset == total
"""

from __future__ import annotations

import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.relay.host.sql import SqlCourseRecordSource, SqlHostDirectory, SqlMembershipRecordSource
from src.relay.sync import BatchSyncEngine, SyncStatus, SyncType

_SCHEMA = [
    "CREATE TABLE wp_users (ID INTEGER PRIMARY KEY, user_email TEXT)",
    "CREATE TABLE wp_usermeta (umeta_id INTEGER PRIMARY KEY, user_id INTEGER, "
    "meta_key TEXT, meta_value TEXT)",
    "CREATE TABLE wp_posts (ID INTEGER PRIMARY KEY, post_title TEXT, post_type TEXT, "
    "post_status TEXT)",
    "CREATE TABLE wp_postmeta (meta_id INTEGER PRIMARY KEY, post_id INTEGER, "
    "meta_key TEXT, meta_value TEXT)",
    "CREATE TABLE wp_pmpro_membership_levels (id INTEGER PRIMARY KEY, name TEXT)",
    "CREATE TABLE wp_pmpro_memberships_users (id INTEGER PRIMARY KEY, user_id INTEGER, "
    "membership_id INTEGER, status TEXT)",
    "CREATE TABLE wp_comments (comment_ID INTEGER PRIMARY KEY, user_id INTEGER, "
    "comment_post_ID INTEGER, comment_type TEXT, comment_approved TEXT)",
]

_ROWS = [
    "INSERT INTO wp_users VALUES (1, 'ann@example.com'), (2, 'bob@example.com'), (3, '')",
    "INSERT INTO wp_usermeta VALUES (1, 1, 'first_name', 'Ann')",
    "INSERT INTO wp_posts VALUES (10, 'Intro', 'course', 'publish'), "
    "(11, 'Lesson One', 'lesson', 'publish'), (12, 'Draft Course', 'course', 'draft')",
    "INSERT INTO wp_postmeta VALUES (1, 11, '_lesson_course', '10')",
    "INSERT INTO wp_pmpro_membership_levels VALUES (1, 'Silver'), (2, 'Gold')",
    # Membership 3 points at level 9, which was deleted
    "INSERT INTO wp_pmpro_memberships_users VALUES (1, 1, 2, 'active'), (2, 2, 1, 'active'), "
    "(3, 3, 9, 'active'), (4, 2, 2, 'cancelled')",
    "INSERT INTO wp_comments VALUES "
    "(1, 1, 10, 'sensei_course_status', 'in-progress'), "
    "(2, 2, 10, 'sensei_course_status', 'complete'), "
    "(3, 2, 12, 'sensei_course_status', 'complete'), "
    "(4, 1, 10, 'comment', '1')",
]


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        for statement in _SCHEMA + _ROWS:
            await conn.execute(text(statement))
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


# ── Directory ────────────────────────────────────────────────────────────────


class TestDirectoryQueries:
    async def test_user_identity(self, session_factory):
        directory = SqlHostDirectory(session_factory)

        identity = await directory.get_user_identity(1)

        assert identity.id == 1
        assert identity.email == "ann@example.com"

    async def test_user_without_email_or_missing(self, session_factory):
        directory = SqlHostDirectory(session_factory)

        assert await directory.get_user_identity(3) is None
        assert await directory.get_user_identity(99) is None

    async def test_lookups(self, session_factory):
        directory = SqlHostDirectory(session_factory)

        assert await directory.get_user_attribute(1, "first_name") == "Ann"
        assert await directory.get_user_attribute(2, "first_name") == ""
        level = await directory.get_level(2)
        assert (level.id, level.name) == (2, "Gold")
        assert await directory.get_level(9) is None
        assert await directory.get_post_title(10) == "Intro"
        assert await directory.get_lesson_course(11) == 10

    async def test_condition_values(self, session_factory):
        values = await SqlHostDirectory(session_factory).list_condition_values()

        assert values["level_name"] == ["Gold", "Silver"]
        assert values["level_id"] == ["2", "1"]
        assert values["course_id"] == ["10"]
        assert values["course_title"] == ["Intro"]
        assert values["lesson_id"] == ["11"]
        assert values["quiz_id"] == []


# ── Record Sources ───────────────────────────────────────────────────────────


class TestMembershipSourceQueries:
    async def test_count_matches_returned_rows(self, session_factory):
        page = await SqlMembershipRecordSource(session_factory).fetch_page(0, 0, 25)

        assert page.total == 2
        assert [r.record_id for r in page.records] == ["1:2", "2:1"]
        assert page.records[0].payload == {
            "level_id": 2,
            "level_name": "Gold",
            "order_total": 0,
            "payment_type": "",
        }

    async def test_paging(self, session_factory):
        source = SqlMembershipRecordSource(session_factory)

        first = await source.fetch_page(0, 0, 1)
        second = await source.fetch_page(0, 1, 1)

        assert first.total == second.total == 2
        assert [r.record_id for r in first.records] == ["1:2"]
        assert [r.record_id for r in second.records] == ["2:1"]

    async def test_level_filter(self, session_factory):
        page = await SqlMembershipRecordSource(session_factory).fetch_page(2, 0, 25)

        assert page.total == 1
        assert [r.user_id for r in page.records] == [1]

    async def test_filter_on_deleted_level_is_empty(self, session_factory):
        page = await SqlMembershipRecordSource(session_factory).fetch_page(9, 0, 25)

        assert page.total == 0
        assert page.records == []


class TestCourseSourceQueries:
    async def test_page(self, session_factory):
        page = await SqlCourseRecordSource(session_factory).fetch_page(0, 0, 25)

        assert page.total == 3
        assert [r.record_id for r in page.records] == ["1:10", "2:10", "2:12"]
        assert page.records[2].payload == {"course_id": 12, "course_title": "Draft Course"}

    async def test_course_filter(self, session_factory):
        page = await SqlCourseRecordSource(session_factory).fetch_page(10, 0, 25)

        assert page.total == 2
        assert [r.user_id for r in page.records] == [1, 2]


# ── Bulk Sync ────────────────────────────────────────────────────────────────


class TestMembershipBackfill:
    async def test_run_ends_with_offset_equal_total(
        self, session_factory, services, store, sender
    ):
        directory = SqlHostDirectory(session_factory)
        engine = BatchSyncEngine(
            store=store,
            resolver=services.resolver,
            directory=directory,
            sender=sender,
            scheduler=None,
            sources={SyncType.PRIMARY: SqlMembershipRecordSource(session_factory)},
            batch_size=1,
            delay_ms=0,
        )

        progress = await engine.run_page(SyncType.PRIMARY, 0)
        while progress.status == SyncStatus.RUNNING:
            progress = await engine.run_page(SyncType.PRIMARY, progress.offset)

        assert progress.status == SyncStatus.DONE
        assert progress.offset == progress.total == 2
        assert progress.errors == 0
        assert [c["email"] for c in sender.calls] == ["ann@example.com", "bob@example.com"]
