"""Event coordinator and per-unit-of-work state.

Exports:
    EventCoordinator: dedup policy and passthrough delivery
    UnitOfWork, PendingLevelChange: transient state for one host operation
"""

from src.relay.coordinator.coordinator import EventCoordinator
from src.relay.coordinator.unit_of_work import PendingLevelChange, UnitOfWork

__all__ = [
    "EventCoordinator",
    "PendingLevelChange",
    "UnitOfWork",
]
