"""FastAPI dependencies for the relay service container and admin authentication."""

from __future__ import annotations

import secrets

from fastapi import Depends, HTTPException, Request, status

from src.relay.services import RelayServices


def get_services(request: Request) -> RelayServices:
    """Retrieve RelayServices from app.state, 503 if not available."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Relay services not initialized",
        )
    return services


async def require_api_key(
    request: Request,
    services: RelayServices = Depends(get_services),
) -> None:
    """Check the X-API-Key header against ADMIN_API_KEY.

    No check is made when ADMIN_API_KEY is empty.

    Raises:
        HTTPException(401): If the key is missing or wrong.
    """
    expected = services.settings.ADMIN_API_KEY
    if not expected:
        return

    api_key = request.headers.get("X-API-Key")
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    if not secrets.compare_digest(api_key.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


# Alias for cleaner router declarations
require_admin = Depends(require_api_key)
