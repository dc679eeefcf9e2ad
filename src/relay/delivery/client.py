"""Bento API client -- the outbound delivery capability.

Implements EventSender over Bento's batch events endpoint with httpx.

Key implementation details:
- send_event() returns a DeliveryResult and never raises; the error is
  carried in the result so callers count failures instead of catching.
- Transport errors, 429 and 5xx responses are retried with tenacity
  (3 attempts, exponential backoff). Other 4xx responses fail at once.
- Missing credentials produce a failed result without any network call.
"""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from src.relay.config import Settings

logger = structlog.get_logger(__name__)


class DeliveryResult(BaseModel):
    """Outcome of one delivery call."""

    ok: bool
    status_code: int | None = None
    error: str | None = None

    @classmethod
    def success(cls, status_code: int | None = None) -> DeliveryResult:
        return cls(ok=True, status_code=status_code)

    @classmethod
    def failure(cls, error: str, status_code: int | None = None) -> DeliveryResult:
        return cls(ok=False, status_code=status_code, error=error)


class EventSender(ABC):
    """Capability: deliver one event to the marketing-automation API."""

    @abstractmethod
    async def send_event(
        self,
        user_id: int,
        event_name: str,
        email: str,
        payload: dict[str, Any],
        attributes: dict[str, Any],
    ) -> DeliveryResult:
        """Send one event. Must not raise."""
        ...


class _TransientStatusError(Exception):
    """Raised internally for retryable HTTP status codes."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Bento API returned HTTP {status_code}")
        self.status_code = status_code


_RETRYABLE = (httpx.TransportError, _TransientStatusError)


class BentoClient(EventSender):
    """Async Bento API client.

    Args:
        site_key: Bento site UUID.
        publishable_key: Basic auth username.
        secret_key: Basic auth password.
        base_url: API root, e.g. ``https://app.bentonow.com/api/v1``.
        timeout: Request timeout in seconds.
        http_client: Optional pre-built httpx.AsyncClient (tests inject a
            MockTransport-backed client here).
        retry_wait: tenacity wait strategy between attempts.
        max_attempts: Attempts per call, including the first.
    """

    def __init__(
        self,
        site_key: str,
        publishable_key: str,
        secret_key: str,
        base_url: str = "https://app.bentonow.com/api/v1",
        timeout: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
        retry_wait: wait_base | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._site_key = site_key
        self._publishable_key = publishable_key
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._max_attempts = max_attempts

    @classmethod
    def from_settings(cls, settings: Settings) -> BentoClient:
        return cls(
            site_key=settings.BENTO_SITE_KEY,
            publishable_key=settings.BENTO_PUBLISHABLE_KEY,
            secret_key=settings.BENTO_SECRET_KEY,
            base_url=settings.BENTO_API_URL,
            timeout=settings.BENTO_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self._site_key and self._publishable_key and self._secret_key)

    def _headers(self) -> dict[str, str]:
        token = base64.b64encode(
            f"{self._publishable_key}:{self._secret_key}".encode()
        ).decode()
        return {
            "Accept": "application/json",
            "Authorization": f"Basic {token}",
            "User-Agent": f"bento-python-{self._site_key}",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Issue a request, retrying transport errors, 429 and 5xx."""
        url = f"{self._base_url}{path}"
        params = {"site_uuid": self._site_key, **kwargs.pop("params", {})}

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(_RETRYABLE),
            reraise=True,
        ):
            with attempt:
                response = await self._client.request(
                    method, url, params=params, headers=self._headers(), **kwargs
                )
                if response.status_code == 429 or response.status_code >= 500:
                    raise _TransientStatusError(response.status_code)
        return response

    async def send_event(
        self,
        user_id: int,
        event_name: str,
        email: str,
        payload: dict[str, Any],
        attributes: dict[str, Any],
    ) -> DeliveryResult:
        """Post one event to Bento's batch events endpoint."""
        if not self.configured:
            return DeliveryResult.failure("Bento API credentials are not configured.")

        body = {
            "events": [
                {
                    "type": event_name,
                    "email": email,
                    "fields": attributes,
                    "details": payload,
                }
            ]
        }

        try:
            response = await self._request("POST", "/batch/events", json=body)
        except _TransientStatusError as exc:
            logger.warning(
                "bento.send_failed",
                user_id=user_id,
                event_name=event_name,
                status_code=exc.status_code,
            )
            return DeliveryResult.failure(str(exc), status_code=exc.status_code)
        except (httpx.HTTPError, RetryError) as exc:
            logger.warning(
                "bento.send_failed",
                user_id=user_id,
                event_name=event_name,
                error=str(exc),
            )
            return DeliveryResult.failure(f"Bento API request failed: {exc}")

        if response.is_success:
            logger.debug("bento.event_sent", user_id=user_id, event_name=event_name)
            return DeliveryResult.success(response.status_code)

        logger.warning(
            "bento.send_rejected",
            user_id=user_id,
            event_name=event_name,
            status_code=response.status_code,
        )
        return DeliveryResult.failure(
            f"Bento API returned HTTP {response.status_code}",
            status_code=response.status_code,
        )

    async def fetch_field_keys(self) -> list[str]:
        """Fetch the account's custom field keys, sorted.

        Raises:
            RuntimeError: If credentials are missing or the API call fails.
        """
        if not self.configured:
            raise RuntimeError(
                "Bento API credentials are not configured. Set BENTO_SITE_KEY, "
                "BENTO_PUBLISHABLE_KEY and BENTO_SECRET_KEY."
            )

        try:
            response = await self._request("GET", "/fetch/fields")
        except (httpx.HTTPError, _TransientStatusError) as exc:
            raise RuntimeError(f"Bento API request failed: {exc}") from exc

        if response.status_code != 200:
            raise RuntimeError(f"Bento API returned HTTP {response.status_code}")

        data = response.json().get("data") or []
        keys = [
            field.get("attributes", {}).get("key", "")
            for field in data
            if isinstance(field, dict)
        ]
        return sorted(k for k in keys if k)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
