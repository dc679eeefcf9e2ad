"""SQLAlchemy-backed host directory and bulk sync record sources.

Reads a WordPress-style schema (table names carry HOST_TABLE_PREFIX):
- ``users`` / ``usermeta``: identity and attributes
- ``posts`` / ``postmeta``: course, lesson and quiz titles, lesson parents
- ``pmpro_membership_levels`` / ``pmpro_memberships_users``: memberships
- ``comments`` (comment_type ``sensei_course_status``): course progress

All queries are read-only and use bound parameters. Table names are
interpolated from the configured prefix, which is validated on construction.

WordPress spells some columns in upper case (``users.ID``, ``posts.ID``,
``comments.comment_post_ID``). Every selected column is aliased to lower
case so row attributes read the same on MySQL, SQLite and Postgres.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.relay.exceptions import RecordSourceUnavailableError
from src.relay.host.directory import HostDirectory, MembershipLevel, UserIdentity
from src.relay.sync.schemas import EligibleRecord, RecordPage
from src.relay.sync.sources import RecordSource

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[], AsyncSession]

_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9_]*$")


def _validate_prefix(prefix: str) -> str:
    if not _PREFIX_PATTERN.match(prefix):
        msg = f"Invalid table prefix '{prefix}'"
        raise ValueError(msg)
    return prefix


class SqlHostDirectory(HostDirectory):
    """HostDirectory over the host database.

    Args:
        session_factory: Callable returning an AsyncSession context manager.
        table_prefix: Host table prefix, e.g. ``wp_``.
    """

    def __init__(self, session_factory: SessionFactory, table_prefix: str = "wp_") -> None:
        self._session_factory = session_factory
        self._prefix = _validate_prefix(table_prefix)

    def _t(self, name: str) -> str:
        return f"{self._prefix}{name}"

    async def _scalar(self, sql: str, **params: Any) -> Any:
        async with self._session_factory() as session:
            result = await session.execute(text(sql), params)
            return result.scalar_one_or_none()

    async def get_user_identity(self, user_id: int) -> UserIdentity | None:
        if user_id <= 0:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                text(
                    f"SELECT ID AS id, user_email AS user_email FROM {self._t('users')} "
                    "WHERE ID = :user_id"
                ),
                {"user_id": user_id},
            )
            row = result.first()
        if row is None or not row.user_email:
            return None
        return UserIdentity(id=int(row.id), email=row.user_email)

    async def get_user_attribute(self, user_id: int, attribute_name: str) -> str:
        if not attribute_name:
            return ""
        value = await self._scalar(
            f"SELECT meta_value FROM {self._t('usermeta')} "
            "WHERE user_id = :user_id AND meta_key = :meta_key "
            "ORDER BY umeta_id LIMIT 1",
            user_id=user_id,
            meta_key=attribute_name,
        )
        return "" if value is None else str(value)

    async def get_level(self, level_id: int) -> MembershipLevel | None:
        if level_id <= 0:
            return None
        async with self._session_factory() as session:
            result = await session.execute(
                text(
                    f"SELECT id AS id, name AS name FROM {self._t('pmpro_membership_levels')} "
                    "WHERE id = :id"
                ),
                {"id": level_id},
            )
            row = result.first()
        if row is None:
            return None
        return MembershipLevel(id=int(row.id), name=row.name or "")

    async def get_post_title(self, post_id: int) -> str:
        value = await self._scalar(
            f"SELECT post_title FROM {self._t('posts')} WHERE ID = :post_id",
            post_id=post_id,
        )
        return value or ""

    async def get_lesson_course(self, lesson_id: int) -> int:
        value = await self._scalar(
            f"SELECT meta_value FROM {self._t('postmeta')} "
            "WHERE post_id = :post_id AND meta_key = '_lesson_course' LIMIT 1",
            post_id=lesson_id,
        )
        try:
            return int(value) if value is not None else 0
        except (TypeError, ValueError):
            return 0

    async def list_condition_values(self) -> dict[str, list[str]]:
        data: dict[str, list[str]] = {}

        async with self._session_factory() as session:
            levels = (
                await session.execute(
                    text(
                        f"SELECT id AS id, name AS name FROM {self._t('pmpro_membership_levels')} "
                        "ORDER BY name"
                    )
                )
            ).all()

            posts: dict[str, list[Any]] = {}
            for post_type in ("course", "lesson", "quiz"):
                posts[post_type] = (
                    await session.execute(
                        text(
                            f"SELECT ID AS id, post_title AS post_title FROM {self._t('posts')} "
                            "WHERE post_type = :post_type AND post_status = 'publish' "
                            "ORDER BY post_title"
                        ),
                        {"post_type": post_type},
                    )
                ).all()

        level_names = [row.name for row in levels]
        # Every payload key carrying a level name shares the same list
        for key in ("level_name", "new_level_name", "old_level_names", "last_level_names"):
            data[key] = list(level_names)
        data["level_id"] = [str(row.id) for row in levels]

        data["course_title"] = [row.post_title for row in posts["course"]]
        data["course_id"] = [str(row.id) for row in posts["course"]]
        data["lesson_title"] = [row.post_title for row in posts["lesson"]]
        data["lesson_id"] = [str(row.id) for row in posts["lesson"]]
        data["quiz_id"] = [str(row.id) for row in posts["quiz"]]

        data["pass"] = ["1", ""]
        data["quiz_grade_type"] = ["auto", "manual", "pass_fail"]
        return data


class SqlMembershipRecordSource(RecordSource):
    """Active memberships, one record per (user, level), ordered by user ID.

    Payload mirrors a checkout: level_id, level_name, order_total=0,
    payment_type="". An optional filter restricts to one level ID.
    Memberships whose level no longer exists are neither counted nor
    returned.
    """

    def __init__(self, session_factory: SessionFactory, table_prefix: str = "wp_") -> None:
        self._session_factory = session_factory
        self._prefix = _validate_prefix(table_prefix)

    async def fetch_page(self, filter_id: int, offset: int, limit: int) -> RecordPage:
        members = f"{self._prefix}pmpro_memberships_users"
        levels = f"{self._prefix}pmpro_membership_levels"
        filter_sql = " AND mu.membership_id = :filter_id" if filter_id > 0 else ""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if filter_id > 0:
            params["filter_id"] = filter_id

        # Count and page share one FROM clause; memberships whose level was
        # deleted are excluded from both
        base = (
            f"FROM {members} mu JOIN {levels} l ON l.id = mu.membership_id "
            f"WHERE mu.status = 'active'{filter_sql}"
        )

        try:
            async with self._session_factory() as session:
                total = (
                    await session.execute(
                        text(
                            "SELECT COUNT(*) FROM (SELECT DISTINCT mu.user_id, mu.membership_id "
                            f"{base}) t"
                        ),
                        params,
                    )
                ).scalar_one()

                rows = (
                    await session.execute(
                        text(
                            "SELECT DISTINCT mu.user_id AS user_id, "
                            "mu.membership_id AS membership_id, l.name AS level_name "
                            f"{base} "
                            "ORDER BY mu.user_id, mu.membership_id "
                            "LIMIT :limit OFFSET :offset"
                        ),
                        params,
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise RecordSourceUnavailableError(f"Membership tables unavailable: {exc}") from exc

        records = [
            EligibleRecord(
                user_id=int(row.user_id),
                record_id=f"{row.user_id}:{row.membership_id}",
                payload={
                    "level_id": int(row.membership_id),
                    "level_name": row.level_name or "",
                    "order_total": 0,
                    "payment_type": "",
                },
            )
            for row in rows
        ]
        return RecordPage(records=records, total=int(total))


class SqlCourseRecordSource(RecordSource):
    """In-progress and completed course statuses, ordered by user then course.

    Payload mirrors an enrolment: course_id, course_title. An optional
    filter restricts to one course ID.
    """

    def __init__(self, session_factory: SessionFactory, table_prefix: str = "wp_") -> None:
        self._session_factory = session_factory
        self._prefix = _validate_prefix(table_prefix)

    async def fetch_page(self, filter_id: int, offset: int, limit: int) -> RecordPage:
        comments = f"{self._prefix}comments"
        posts = f"{self._prefix}posts"
        filter_sql = " AND c.comment_post_ID = :filter_id" if filter_id > 0 else ""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if filter_id > 0:
            params["filter_id"] = filter_id

        base = (
            f"FROM {comments} c "
            "WHERE c.comment_type = 'sensei_course_status' "
            f"AND c.comment_approved IN ('in-progress', 'complete'){filter_sql}"
        )

        try:
            async with self._session_factory() as session:
                total = (
                    await session.execute(
                        text(
                            "SELECT COUNT(*) FROM (SELECT DISTINCT c.user_id, c.comment_post_ID "
                            f"{base}) t"
                        ),
                        params,
                    )
                ).scalar_one()

                rows = (
                    await session.execute(
                        text(
                            "SELECT t.user_id, t.course_id, p.post_title AS course_title FROM ("
                            "SELECT DISTINCT c.user_id AS user_id, c.comment_post_ID AS course_id "
                            f"{base}) t LEFT JOIN {posts} p ON p.ID = t.course_id "
                            "ORDER BY t.user_id, t.course_id "
                            "LIMIT :limit OFFSET :offset"
                        ),
                        params,
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise RecordSourceUnavailableError(f"Course tables unavailable: {exc}") from exc

        records = [
            EligibleRecord(
                user_id=int(row.user_id),
                record_id=f"{row.user_id}:{row.course_id}",
                payload={
                    "course_id": int(row.course_id),
                    "course_title": row.course_title or "",
                },
            )
            for row in rows
        ]
        return RecordPage(records=records, total=int(total))
