"""Field mapping layer -- event catalogue, settings, sanitizer and resolver.

Exports:
    FieldResolver: Evaluates mapping rules for one event instance.
    SettingsRepository: Loads and saves per-event-type configuration.
    EVENT_DEFINITIONS: Built-in event catalogue keyed by event key.
    sanitize_settings: Save-boundary normalizer for raw settings input.
"""

from src.relay.mapping.definitions import EVENT_DEFINITIONS, default_event_name
from src.relay.mapping.resolver import FieldResolver, UserAttributeLookup
from src.relay.mapping.sanitize import sanitize_settings
from src.relay.mapping.schemas import (
    EventTypeConfig,
    IntegrationSettings,
    ResolvedEvent,
    ResolvedFields,
    SourceKind,
)
from src.relay.mapping.settings import SettingsRepository

__all__ = [
    "EVENT_DEFINITIONS",
    "EventTypeConfig",
    "FieldResolver",
    "IntegrationSettings",
    "ResolvedEvent",
    "ResolvedFields",
    "SettingsRepository",
    "SourceKind",
    "UserAttributeLookup",
    "default_event_name",
    "sanitize_settings",
]
