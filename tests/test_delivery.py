"""Tests for the delivery queue and the Bento API client.

Covers:
- DeliveryQueue inline (degraded) and queued paths, inline fallback when scheduling fails
- Worker-side run_queued_event and the probe path
- deliver_safely converting sender exceptions into failed results
- BentoClient request shape, retry on 429/5xx/transport errors, 4xx failure
- BentoClient.fetch_field_keys parsing and errors
"""

from __future__ import annotations

import base64
import json
from unittest.mock import AsyncMock

import httpx
import pytest
from tenacity import wait_none

from src.relay.delivery import BentoClient, DeliveryQueue
from src.relay.delivery.queue import deliver_safely
from src.relay.mapping.schemas import ResolvedEvent
from src.relay.scheduling.scheduler import DELIVER_EVENT_TASK


def _event(user_id: int = 1) -> ResolvedEvent:
    return ResolvedEvent(
        user_id=user_id,
        event_name="$Checkout",
        email="alice@example.com",
        payload={"level_id": 2},
        attributes={"plan": "Gold"},
        event_key="checkout",
    )


def _bento(handler, **kwargs) -> BentoClient:
    return BentoClient(
        site_key=kwargs.pop("site_key", "site-uuid"),
        publishable_key=kwargs.pop("publishable_key", "pub"),
        secret_key=kwargs.pop("secret_key", "secret"),
        base_url="https://bento.test/api/v1",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_wait=wait_none(),
        **kwargs,
    )


# ── Delivery Queue ───────────────────────────────────────────────────────────


class TestDeliveryQueue:
    async def test_inline_path_sends_immediately(self, sender):
        queue = DeliveryQueue(sender)

        await queue.enqueue(_event())

        assert queue.is_async is False
        assert sender.calls[0]["attributes"] == {"plan": "Gold"}
        assert sender.calls[0]["payload"] == {"level_id": 2}

    async def test_inline_failure_is_swallowed(self, sender):
        sender.raise_for.add(1)
        queue = DeliveryQueue(sender)

        await queue.enqueue(_event())

        assert len(sender.calls) == 1

    async def test_queued_path_defers_http_call(self, sender, scheduler):
        queue = DeliveryQueue(sender, scheduler)

        await queue.enqueue(_event())

        assert queue.is_async is True
        assert sender.calls == []
        task = scheduler.named(DELIVER_EVENT_TASK)[0]
        assert task.args["event_name"] == "$Checkout"
        assert task.args["attributes"] == {"plan": "Gold"}

    async def test_queued_task_carries_resolved_event(self, sender, scheduler):
        queue = DeliveryQueue(sender, scheduler)
        await queue.enqueue(_event())
        task = scheduler.named(DELIVER_EVENT_TASK)[0]

        result = await queue.run_queued_event(task.args)

        assert result.ok is True
        assert sender.calls[0]["email"] == "alice@example.com"
        assert sender.calls[0]["event_name"] == "$Checkout"

    async def test_schedule_failure_falls_back_to_inline(self, sender, scheduler):
        scheduler.schedule = AsyncMock(side_effect=ConnectionError("redis down"))
        queue = DeliveryQueue(sender, scheduler)

        await queue.enqueue(_event())

        assert [c["event_name"] for c in sender.calls] == ["$Checkout"]
        assert scheduler.tasks == []

    async def test_run_queued_event_returns_failure(self, sender):
        sender.fail_for.add(1)
        queue = DeliveryQueue(sender)

        result = await queue.run_queued_event(_event().model_dump(mode="json"))

        assert result.ok is False
        assert result.status_code == 422

    async def test_send_now_surfaces_error(self, sender):
        sender.raise_for.add(1)
        queue = DeliveryQueue(sender)

        result = await queue.send_now(_event())

        assert result.ok is False
        assert result.error == "boom for user 1"


class TestDeliverSafely:
    async def test_exception_becomes_failed_result(self, sender):
        sender.raise_for.add(1)

        result = await deliver_safely(sender, _event(), mode="sync")

        assert result.ok is False
        assert "boom" in result.error

    async def test_success_passthrough(self, sender):
        result = await deliver_safely(sender, _event(), mode="sync")

        assert result.ok is True
        assert result.status_code == 200


# ── Bento Client ─────────────────────────────────────────────────────────────


class TestBentoClientSend:
    async def test_request_shape(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"results": 1, "failed": 0})

        client = _bento(handler)
        result = await client.send_event(
            1, "$Checkout", "alice@example.com", {"level_id": 2}, {"plan": "Gold"}
        )

        assert result.ok is True
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v1/batch/events"
        assert request.url.params["site_uuid"] == "site-uuid"
        expected = base64.b64encode(b"pub:secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"
        assert json.loads(request.content) == {
            "events": [
                {
                    "type": "$Checkout",
                    "email": "alice@example.com",
                    "fields": {"plan": "Gold"},
                    "details": {"level_id": 2},
                }
            ]
        }

    async def test_retries_server_error_then_succeeds(self):
        statuses = iter([503, 200])
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(next(statuses))

        result = await _bento(handler).send_event(1, "$E", "a@b.c", {}, {})

        assert result.ok is True
        assert calls == 2

    async def test_rate_limit_retried_until_exhausted(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(429)

        result = await _bento(handler).send_event(1, "$E", "a@b.c", {}, {})

        assert result.ok is False
        assert result.status_code == 429
        assert calls == 3

    async def test_client_error_not_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(422, json={"error": "bad"})

        result = await _bento(handler).send_event(1, "$E", "a@b.c", {}, {})

        assert result.ok is False
        assert result.status_code == 422
        assert result.error == "Bento API returned HTTP 422"
        assert calls == 1

    async def test_transport_error_returns_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await _bento(handler, max_attempts=2).send_event(1, "$E", "a@b.c", {}, {})

        assert result.ok is False
        assert "connection refused" in result.error

    async def test_unconfigured_client_makes_no_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            pytest.fail("no request expected")

        client = _bento(handler, secret_key="")
        result = await client.send_event(1, "$E", "a@b.c", {}, {})

        assert client.configured is False
        assert result.ok is False
        assert "not configured" in result.error


class TestBentoClientFields:
    async def test_fetch_field_keys_sorted(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/fetch/fields"
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"attributes": {"key": "plan"}},
                        {"attributes": {"key": "first_name"}},
                        {"attributes": {}},
                    ]
                },
            )

        keys = await _bento(handler).fetch_field_keys()

        assert keys == ["first_name", "plan"]

    async def test_fetch_field_keys_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401)

        with pytest.raises(RuntimeError, match="HTTP 401"):
            await _bento(handler).fetch_field_keys()

    async def test_fetch_field_keys_unconfigured(self):
        def handler(request: httpx.Request) -> httpx.Response:
            pytest.fail("no request expected")

        with pytest.raises(RuntimeError, match="not configured"):
            await _bento(handler, site_key="").fetch_field_keys()

    async def test_from_settings(self, settings):
        client = BentoClient.from_settings(settings)
        try:
            assert client.configured is True
        finally:
            await client.aclose()
