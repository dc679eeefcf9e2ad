"""Event preview and connectivity probe endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.relay.api.deps import get_services, require_admin
from src.relay.exceptions import UnknownEventTypeError
from src.relay.mapping.definitions import get_definition
from src.relay.mapping.schemas import ResolvedEvent
from src.relay.services import RelayServices

router = APIRouter(prefix="/events", tags=["events"], dependencies=[require_admin])

TEST_EVENT_SOURCE = "bento-relay"


class ResolveRequest(BaseModel):
    user_id: int
    payload: dict[str, Any] = Field(default_factory=dict)


class ResolveResponse(BaseModel):
    """Preview of what would be sent for one event, enabled or not."""

    event_key: str
    enabled: bool
    event_name: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class TestEventRequest(BaseModel):
    user_id: int


class TestEventResponse(BaseModel):
    message: str
    event_name: str
    email: str


@router.post("/{event_key}/resolve", response_model=ResolveResponse)
async def resolve_event(
    event_key: str,
    body: ResolveRequest,
    services: RelayServices = Depends(get_services),
) -> ResolveResponse:
    """Resolve an event's mapping rules against a sample payload."""
    try:
        get_definition(event_key)
    except UnknownEventTypeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    resolved = await services.resolver.resolve(event_key, body.user_id, body.payload)
    return ResolveResponse(
        event_key=event_key,
        enabled=await services.settings_repo.is_enabled(event_key),
        event_name=resolved.event_name,
        attributes=resolved.attributes,
    )


@router.post("/test", response_model=TestEventResponse)
async def send_test_event(
    body: TestEventRequest,
    services: RelayServices = Depends(get_services),
) -> TestEventResponse:
    """Send the test event synchronously and surface any delivery error."""
    identity = await services.directory.get_user_identity(body.user_id)
    if identity is None or not identity.email:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {body.user_id} not found or has no email",
        )

    event = ResolvedEvent(
        user_id=identity.id,
        event_name=services.settings.TEST_EVENT_NAME,
        email=identity.email,
        payload={"source": TEST_EVENT_SOURCE},
        attributes={},
    )
    result = await services.queue.send_now(event)
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed: {result.error}",
        )

    return TestEventResponse(
        message=f"Test event sent to {identity.email}. Check your Bento dashboard.",
        event_name=event.event_name,
        email=identity.email,
    )
