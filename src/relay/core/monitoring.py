"""Prometheus metrics for deliveries, bulk sync, background tasks and HTTP.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- track_delivery(): record one delivery outcome
- get_metrics_response(): Prometheus exposition for the /metrics route
"""

from __future__ import annotations

import time

from prometheus_client import REGISTRY, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "relay_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "relay_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Relay Metrics ────────────────────────────────────────────────────────────

deliveries_total = Counter(
    "relay_deliveries_total",
    "Events delivered to Bento",
    ["event_name", "mode", "status"],
)

sync_records_total = Counter(
    "relay_sync_records_total",
    "Records processed by bulk sync",
    ["sync_type", "status"],
)

worker_tasks_total = Counter(
    "relay_worker_tasks_total",
    "Background tasks executed by the worker",
    ["task_name", "status"],
)


def track_delivery(event_name: str, mode: str, ok: bool) -> None:
    """Count one delivery attempt.

    Args:
        event_name: Output event name sent to Bento.
        mode: "queued", "inline", "sync" or "probe".
        ok: Whether the delivery succeeded.
    """
    deliveries_total.labels(
        event_name=event_name,
        mode=mode,
        status="success" if ok else "error",
    ).inc()


# ── Metrics Middleware ───────────────────────────────────────────────────────


def _route_template(request: Request) -> str:
    """Matched route pattern (e.g. /api/v1/sync/{sync_type}), or "unmatched"."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records request count and duration per method and route pattern.

    Labels use the route template rather than the raw path so event keys
    and sync types do not multiply series. /metrics itself is not counted.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        # The router fills scope["route"] while handling the request
        endpoint = _route_template(request)
        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()
        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
