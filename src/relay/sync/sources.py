"""Record sources -- the populations replayed by bulk sync."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.relay.sync.schemas import RecordPage


class RecordSource(ABC):
    """Capability: page through one sync type's eligible records.

    Implementations must order records deterministically (ascending by an
    immutable identifier) so offset-based paging is resumable.
    """

    @abstractmethod
    async def fetch_page(self, filter_id: int, offset: int, limit: int) -> RecordPage:
        """Return up to ``limit`` records starting at ``offset``.

        Args:
            filter_id: Optional population filter (level or course ID), 0 for all.
            offset: Zero-based position of the first record.
            limit: Page size.

        Raises:
            RecordSourceUnavailableError: If the population cannot be queried.
        """
        ...
