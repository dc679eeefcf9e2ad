"""Domain exceptions for the relay service."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""


class UnknownEventTypeError(RelayError):
    """Raised when an event key is not in the event catalogue."""

    def __init__(self, event_key: str) -> None:
        super().__init__(f"Unknown event type '{event_key}'")
        self.event_key = event_key


class UnknownSyncTypeError(RelayError):
    """Raised when a bulk sync type is not recognised."""

    def __init__(self, sync_type: str) -> None:
        super().__init__(f"Unknown sync type '{sync_type}'")
        self.sync_type = sync_type


class SchedulerUnavailableError(RelayError):
    """Raised when background scheduling is required but not configured."""


class RecordSourceUnavailableError(RelayError):
    """Raised when the bulk sync population cannot be queried."""
