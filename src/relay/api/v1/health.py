"""Liveness and readiness endpoints.

/health answers as long as the process is up. /health/ready also checks
the backends the relay cannot work without (Redis for settings, progress
and the task queue; the host database for identities and bulk sync) and
reports the delivery mode and whether Bento credentials are present.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.relay.config import get_settings
from src.relay.core.database import ping_database
from src.relay.core.redis import ping_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


@router.get("/health/ready")
async def readiness_check(request: Request):
    """200 when Redis and the host database respond, else 503 "degraded"."""
    checks: dict[str, str] = {}
    for name, probe in (("redis", ping_redis), ("database", ping_database)):
        error = await probe()
        checks[name] = "ok" if error is None else "error"
        if error is not None:
            checks[f"{name}_error"] = error

    services = getattr(request.app.state, "services", None)
    if services is not None:
        checks["delivery"] = "queued" if services.queue.is_async else "inline"
        checks["bento"] = (
            "configured" if services.settings.bento_configured() else "not_configured"
        )

    ready = checks["redis"] == "ok" and checks["database"] == "ok"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
