"""Integration settings endpoints.

- GET/PUT /settings: per-event-type configuration (PUT goes through the
  sanitizer, so invalid rows never persist)
- GET /settings/definitions: the built-in event catalogue
- GET /settings/fields: Bento custom field keys, cached for FIELDS_CACHE_TTL
- GET /settings/condition-values: suggested condition values from the host
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.relay.api.deps import get_services, require_admin
from src.relay.delivery import BentoClient
from src.relay.mapping import EVENT_DEFINITIONS, EventTypeConfig
from src.relay.mapping.schemas import EventDefinition
from src.relay.services import RelayServices

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"], dependencies=[require_admin])

FIELDS_CACHE_KEY = "bento_fields"


class SettingsResponse(BaseModel):
    """Effective configuration for every catalogue event type."""

    events: dict[str, EventTypeConfig] = Field(default_factory=dict)


class FieldsResponse(BaseModel):
    fields: list[str] = Field(default_factory=list)
    cached: bool = False


async def _effective_settings(services: RelayServices) -> SettingsResponse:
    return SettingsResponse(
        events={
            key: await services.settings_repo.get_event_config(key)
            for key in EVENT_DEFINITIONS
        }
    )


@router.get("", response_model=SettingsResponse)
async def get_integration_settings(
    services: RelayServices = Depends(get_services),
) -> SettingsResponse:
    return await _effective_settings(services)


@router.put("", response_model=SettingsResponse)
async def save_integration_settings(
    raw: dict[str, Any] = Body(...),
    services: RelayServices = Depends(get_services),
) -> SettingsResponse:
    """Sanitize and store settings.

    Accepts either ``{event_key: {...}}`` or ``{"events": {event_key: {...}}}``.
    """
    events = raw["events"] if isinstance(raw.get("events"), dict) else raw
    await services.settings_repo.save(events)
    return await _effective_settings(services)


@router.get("/definitions", response_model=list[EventDefinition])
async def list_event_definitions() -> list[EventDefinition]:
    return list(EVENT_DEFINITIONS.values())


@router.get("/fields", response_model=FieldsResponse)
async def list_bento_fields(
    refresh: bool = Query(default=False, description="Bypass the cached field list"),
    services: RelayServices = Depends(get_services),
) -> FieldsResponse:
    """Return the Bento account's custom field keys."""
    if not refresh:
        cached = await services.store.get(FIELDS_CACHE_KEY)
        if isinstance(cached, list):
            return FieldsResponse(fields=cached, cached=True)

    sender = services.sender
    if not isinstance(sender, BentoClient):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bento client not configured",
        )

    try:
        fields = await sender.fetch_field_keys()
    except RuntimeError as exc:
        logger.warning("settings.fields_fetch_failed", error=str(exc))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    await services.store.set(FIELDS_CACHE_KEY, fields, ttl=services.settings.FIELDS_CACHE_TTL)
    return FieldsResponse(fields=fields, cached=False)


@router.get("/condition-values")
async def list_condition_values(
    services: RelayServices = Depends(get_services),
) -> dict[str, list[str]]:
    return await services.directory.list_condition_values()
