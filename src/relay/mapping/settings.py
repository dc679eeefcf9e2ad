"""Settings repository -- reads and saves per-event-type configuration.

All EventTypeConfigs persist as one JSON document under SETTINGS_KEY in
the ConfigStore. Reads never fail: a missing document or missing event
entry yields built-in defaults (disabled, default output name, no rules).
Writes always go through sanitize_settings().
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from src.relay.core.store import ConfigStore
from src.relay.mapping.definitions import default_event_name
from src.relay.mapping.sanitize import sanitize_settings
from src.relay.mapping.schemas import EventTypeConfig, IntegrationSettings

logger = structlog.get_logger(__name__)

SETTINGS_KEY = "settings"


class SettingsRepository:
    """Typed access to the integration settings document.

    Args:
        store: ConfigStore holding the settings document.
    """

    def __init__(self, store: ConfigStore) -> None:
        self._store = store

    async def load(self) -> IntegrationSettings:
        """Load the full settings document (empty if never saved)."""
        raw = await self._store.get(SETTINGS_KEY)
        if not raw:
            return IntegrationSettings()
        try:
            return IntegrationSettings.model_validate(raw)
        except ValidationError as exc:
            # Stored document predates the current schema; re-sanitize it.
            logger.warning("settings.invalid_document", error=str(exc))
            return sanitize_settings(raw.get("events", {}) if isinstance(raw, dict) else {})

    async def get_event_config(self, event_key: str) -> EventTypeConfig:
        """Return the config for one event type, falling back to defaults."""
        settings = await self.load()
        config = settings.events.get(event_key)
        if config is None:
            return EventTypeConfig(enabled=False, event_name=default_event_name(event_key))
        return config

    async def is_enabled(self, event_key: str) -> bool:
        config = await self.get_event_config(event_key)
        return config.enabled

    async def save(self, raw: Any) -> IntegrationSettings:
        """Sanitize and persist a raw settings document.

        Args:
            raw: Mapping of event key -> {enabled, event_name, mapping_rules}.

        Returns:
            The sanitized settings that were stored.
        """
        settings = sanitize_settings(raw)
        await self._store.set(SETTINGS_KEY, settings.model_dump(mode="json"))
        logger.info(
            "settings.saved",
            enabled_events=[k for k, v in settings.events.items() if v.enabled],
        )
        return settings
