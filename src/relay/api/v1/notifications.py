"""Host notification intake.

One request is one unit of work: notifications are dispatched in order and
the coordinator flush runs exactly once at the end of the request.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from src.relay.api.deps import get_services, require_admin
from src.relay.hooks import NotificationBatch
from src.relay.services import RelayServices

router = APIRouter(prefix="/notifications", tags=["notifications"], dependencies=[require_admin])


class EnqueuedEventResponse(BaseModel):
    user_id: int
    event_key: str
    event_name: str


class NotificationResponse(BaseModel):
    """Events handed to the delivery queue by this unit of work."""

    enqueued: int = 0
    events: list[EnqueuedEventResponse] = Field(default_factory=list)


@router.post("", response_model=NotificationResponse, status_code=status.HTTP_202_ACCEPTED)
async def receive_notifications(
    batch: NotificationBatch,
    services: RelayServices = Depends(get_services),
) -> NotificationResponse:
    """Dispatch a batch of host notifications as one unit of work."""
    events = await services.dispatcher.process(batch.notifications)
    return NotificationResponse(
        enqueued=len(events),
        events=[
            EnqueuedEventResponse(
                user_id=e.user_id,
                event_key=e.event_key,
                event_name=e.event_name,
            )
            for e in events
        ],
    )
