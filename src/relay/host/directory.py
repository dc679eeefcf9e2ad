"""Host application capabilities the relay consumes.

HostDirectory bundles the read-only lookups against the host site:
user identity and attributes, membership levels, post titles and lesson
parents, plus condition-value suggestions for the settings UI.
"""

from __future__ import annotations

from abc import abstractmethod

from pydantic import BaseModel

from src.relay.mapping.resolver import UserAttributeLookup


class UserIdentity(BaseModel):
    """Resolved host user."""

    id: int
    email: str


class MembershipLevel(BaseModel):
    """A membership level as reported by the host."""

    id: int
    name: str = ""


class HostDirectory(UserAttributeLookup):
    """Abstract read-only view of the host application."""

    @abstractmethod
    async def get_user_identity(self, user_id: int) -> UserIdentity | None:
        """Return the user's identity, or None if the user does not exist."""
        ...

    @abstractmethod
    async def get_level(self, level_id: int) -> MembershipLevel | None:
        """Return a membership level by ID, or None."""
        ...

    @abstractmethod
    async def get_post_title(self, post_id: int) -> str:
        """Return a post's title (course, lesson, quiz), or "" if absent."""
        ...

    @abstractmethod
    async def get_lesson_course(self, lesson_id: int) -> int:
        """Return the parent course ID of a lesson, or 0."""
        ...

    @abstractmethod
    async def list_condition_values(self) -> dict[str, list[str]]:
        """Suggested values per payload key for rule conditions."""
        ...


def join_level_names(levels: list[MembershipLevel]) -> str:
    """Comma-separated level names, as carried in level-change payloads."""
    return ", ".join(level.name for level in levels)
