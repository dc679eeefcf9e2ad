"""Bulk sync control and status endpoints.

Callers POST to start a run, then poll GET every few seconds until the
status leaves "running".
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.relay.api.deps import get_services, require_admin
from src.relay.exceptions import SchedulerUnavailableError, UnknownSyncTypeError
from src.relay.services import RelayServices
from src.relay.sync import SyncProgress

router = APIRouter(prefix="/sync", tags=["sync"], dependencies=[require_admin])


class StartSyncRequest(BaseModel):
    filter_id: int = Field(default=0, ge=0)


@router.post("/{sync_type}", response_model=SyncProgress, status_code=status.HTTP_202_ACCEPTED)
async def start_sync(
    sync_type: str,
    body: StartSyncRequest | None = None,
    services: RelayServices = Depends(get_services),
) -> SyncProgress:
    """Queue a bulk sync run, replacing any pending run of the same type."""
    filter_id = body.filter_id if body is not None else 0
    try:
        return await services.sync_engine.start(sync_type, filter_id)
    except UnknownSyncTypeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SchedulerUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc


@router.get("/{sync_type}", response_model=SyncProgress)
async def get_sync_status(
    sync_type: str,
    services: RelayServices = Depends(get_services),
) -> SyncProgress:
    try:
        return await services.sync_engine.status(sync_type)
    except UnknownSyncTypeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
