"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.relay.api.v1 import events, health, notifications, settings, sync

router = APIRouter()

router.include_router(health.router)
router.include_router(notifications.router, prefix="/api/v1")
router.include_router(events.router, prefix="/api/v1")
router.include_router(sync.router, prefix="/api/v1")
router.include_router(settings.router, prefix="/api/v1")
