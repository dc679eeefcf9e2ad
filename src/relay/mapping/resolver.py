"""Field resolver -- evaluates an event type's mapping rules against a payload.

Used by the real-time coordinator, the bulk sync engine and the resolve
preview endpoint, so the same logic runs whether an event fires live or is
replayed during a backfill.

Rule evaluation, in order:
1. Conditional rules apply only when ``str(payload[condition_key])`` equals
   ``condition_value`` exactly (missing key compares as "").
2. The value comes from the rule's source kind. Missing user attributes
   and missing payload keys resolve to "".
3. Later rules with the same output key overwrite earlier ones.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.relay.mapping.sanitize import sanitize_key, sanitize_text_field
from src.relay.mapping.schemas import (
    EventPayloadRule,
    ResolvedFields,
    StaticRule,
    UserAttributeRule,
)
from src.relay.mapping.settings import SettingsRepository


class UserAttributeLookup(ABC):
    """Capability: read a named attribute for a user."""

    @abstractmethod
    async def get_user_attribute(self, user_id: int, attribute_name: str) -> str:
        """Return the attribute value, or "" if absent."""
        ...


def condition_string(value: Any) -> str:
    """Coerce a payload value to the string form used by rule conditions.

    None and False -> "", True -> "1", integral floats lose the ".0".
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class FieldResolver:
    """Computes output event name and attributes for one event instance.

    Args:
        settings: SettingsRepository for EventTypeConfig lookups.
        attributes: UserAttributeLookup for user-attribute rules.
    """

    def __init__(self, settings: SettingsRepository, attributes: UserAttributeLookup) -> None:
        self._settings = settings
        self._attributes = attributes

    async def resolve(
        self,
        event_key: str,
        user_id: int,
        payload: dict[str, Any],
    ) -> ResolvedFields:
        """Resolve the configured mapping rules for one event.

        Ignores the enabled flag; callers decide whether to deliver.

        Args:
            event_key: Catalogue key (e.g. "checkout").
            user_id: Host user ID for user-attribute lookups.
            payload: Event payload for conditions and payload lookups.

        Returns:
            ResolvedFields with the output event name and attributes.
        """
        config = await self._settings.get_event_config(event_key)
        attributes: dict[str, Any] = {}

        for rule in config.mapping_rules:
            if not rule.output_key:
                continue
            if rule.is_conditional:
                actual = condition_string(payload.get(rule.condition_key))
                if actual != rule.condition_value:
                    continue

            if isinstance(rule, StaticRule):
                value: Any = sanitize_text_field(rule.source_value)
            elif isinstance(rule, UserAttributeRule):
                value = await self._attributes.get_user_attribute(
                    user_id, sanitize_key(rule.source_value)
                )
                if value is None:
                    value = ""
            elif isinstance(rule, EventPayloadRule):
                value = payload.get(rule.source_value, "")
            else:
                raise TypeError(f"Unhandled mapping rule type: {type(rule).__name__}")

            attributes[rule.output_key] = value

        return ResolvedFields(event_name=config.event_name, attributes=attributes)
