"""Settings-save boundary: normalizes raw form/JSON input into typed settings.

Invalid mapping rows never reach storage:
- rows whose sanitized output key is empty are dropped
- unknown source kinds are coerced to ``static``
- condition keys are sanitized as keys, all free text as plain text
"""

from __future__ import annotations

import re
from typing import Any

from src.relay.mapping.definitions import EVENT_DEFINITIONS
from src.relay.mapping.schemas import (
    EventPayloadRule,
    EventTypeConfig,
    IntegrationSettings,
    SourceKind,
    StaticRule,
    UserAttributeRule,
)

_KEY_DISALLOWED = re.compile(r"[^a-z0-9_\-]")
_TAG = re.compile(r"<[^>]*>")
_SCRIPT_OR_STYLE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_LINE_BREAKS = re.compile(r"[\r\n\t]+")
_WHITESPACE = re.compile(r" {2,}")

_RULE_TYPES = {
    SourceKind.STATIC: StaticRule,
    SourceKind.USER_ATTRIBUTE: UserAttributeRule,
    SourceKind.EVENT_PAYLOAD: EventPayloadRule,
}


def sanitize_key(value: Any) -> str:
    """Lowercase and keep only ``[a-z0-9_-]``."""
    if value is None:
        return ""
    return _KEY_DISALLOWED.sub("", str(value).lower())


def sanitize_text_field(value: Any) -> str:
    """Strip markup, drop line breaks and tabs, collapse spaces, trim."""
    if value is None:
        return ""
    text = str(value)
    text = _SCRIPT_OR_STYLE.sub("", text)
    text = _TAG.sub("", text)
    text = _LINE_BREAKS.sub(" ", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false", "off", "no")
    return bool(value)


def _coerce_source_kind(value: Any) -> SourceKind:
    try:
        return SourceKind(value)
    except ValueError:
        return SourceKind.STATIC


def sanitize_mapping_rules(rows: Any) -> list[StaticRule | UserAttributeRule | EventPayloadRule]:
    """Clean a list of raw mapping rows.

    Args:
        rows: Raw rows (dicts with output_key, source_kind, source_value,
            condition_key, condition_value). Non-list input yields [].

    Returns:
        Typed rule objects; empty-key rows are dropped.
    """
    if not isinstance(rows, list):
        return []

    clean = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        output_key = sanitize_key(row.get("output_key"))
        if not output_key:
            continue

        rule_cls = _RULE_TYPES[_coerce_source_kind(row.get("source_kind"))]
        clean.append(
            rule_cls(
                output_key=output_key,
                source_value=sanitize_text_field(row.get("source_value")),
                condition_key=sanitize_key(row.get("condition_key")),
                condition_value=sanitize_text_field(row.get("condition_value")),
            )
        )
    return clean


def sanitize_settings(raw: Any) -> IntegrationSettings:
    """Sanitize a full settings document before it is saved.

    Every catalogue event gets an entry; keys outside the catalogue are
    discarded.

    Args:
        raw: Mapping of event key -> {enabled, event_name, mapping_rules}.

    Returns:
        IntegrationSettings with one EventTypeConfig per catalogue key.
    """
    if not isinstance(raw, dict):
        raw = {}

    events: dict[str, EventTypeConfig] = {}
    for event_key, definition in EVENT_DEFINITIONS.items():
        event_raw = raw.get(event_key)
        if not isinstance(event_raw, dict):
            event_raw = {}

        event_name = sanitize_text_field(event_raw.get("event_name", definition.default_event))
        events[event_key] = EventTypeConfig(
            enabled=_is_truthy(event_raw.get("enabled", False)),
            event_name=event_name or definition.default_event,
            mapping_rules=sanitize_mapping_rules(event_raw.get("mapping_rules", [])),
        )

    return IntegrationSettings(events=events)
