"""Tests for single webhook deliveries."""
import asyncio
import hashlib
import hmac
import json

import httpx

from webhook_dispatch.services.delivery_service import DeliveryService


async def test_delivers_signed_envelope(session_factory, http_client, receiver, make_endpoint, test_settings):
    endpoint = await make_endpoint()
    service = DeliveryService(session_factory, http_client, test_settings)

    result = await service.deliver(endpoint, "call.completed", {"callId": "c1"})

    assert result.success is True
    assert result.status_code == 200

    [request] = receiver.requests
    assert request.method == "POST"
    assert str(request.url) == "https://example.com/hook"

    body = request.content
    envelope = json.loads(body)
    assert envelope["event"] == "call.completed"
    assert envelope["data"] == {"callId": "c1"}
    assert envelope["timestamp"].endswith("Z")
    assert list(envelope) == ["event", "timestamp", "data"]

    expected = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
    assert request.headers["X-Webhook-Signature"] == f"sha256={expected}"
    assert request.headers["X-Webhook-Event"] == "call.completed"
    assert request.headers["X-Webhook-Delivery"] == result.delivery_id
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["User-Agent"] == test_settings.WEBHOOK_USER_AGENT


async def test_delivery_ids_are_unique(session_factory, http_client, receiver, make_endpoint, test_settings):
    endpoint = await make_endpoint()
    service = DeliveryService(session_factory, http_client, test_settings)

    await service.deliver(endpoint, "call.completed", {})
    await service.deliver(endpoint, "call.completed", {})

    ids = {r.headers["X-Webhook-Delivery"] for r in receiver.requests}
    assert len(ids) == 2


async def test_unsigned_when_endpoint_has_no_secret(session_factory, http_client, receiver, make_endpoint, test_settings):
    endpoint = await make_endpoint(secret=None)
    service = DeliveryService(session_factory, http_client, test_settings)

    result = await service.deliver(endpoint, "call.completed", {"callId": "c1"})

    assert result.success is True
    assert receiver.requests[0].headers["X-Webhook-Signature"] == ""


async def test_records_attempt_and_stamps_endpoint(
    session_factory, http_client, make_endpoint, fetch_deliveries, test_settings
):
    endpoint = await make_endpoint()
    service = DeliveryService(session_factory, http_client, test_settings)

    result = await service.deliver(endpoint, "call.completed", {"callId": "c1"})

    [row] = await fetch_deliveries()
    assert row.endpoint_id == endpoint.id
    assert row.organisation_id == "org1"
    assert row.event_type == "call.completed"
    assert row.payload["data"] == {"callId": "c1"}
    assert row.payload["event"] == "call.completed"
    assert row.status_code == 200
    assert row.success is True
    assert row.response_body == "ok"

    async with session_factory() as db:
        refreshed = await db.get(type(endpoint), endpoint.id)
    assert refreshed.last_triggered_at is not None
    assert refreshed.last_triggered_at.replace(tzinfo=None) == result.attempted_at.replace(tzinfo=None)


async def test_error_response_is_recorded_failure(
    session_factory, http_client, receiver, make_endpoint, fetch_deliveries, test_settings
):
    endpoint = await make_endpoint()

    async def server_error(request):
        return httpx.Response(503, text="down for maintenance")

    receiver.route(endpoint.url, server_error)
    service = DeliveryService(session_factory, http_client, test_settings)

    result = await service.deliver(endpoint, "call.completed", {})

    assert result.success is False
    assert result.status_code == 503
    [row] = await fetch_deliveries()
    assert row.success is False
    assert row.status_code == 503
    assert row.response_body == "down for maintenance"


async def test_non_2xx_success_boundaries(session_factory, http_client, receiver, make_endpoint, test_settings):
    service = DeliveryService(session_factory, http_client, test_settings)
    outcomes = {}

    for code in (199, 200, 204, 299, 300, 404):
        endpoint = await make_endpoint(url=f"https://example.com/{code}")

        async def respond(request, code=code):
            return httpx.Response(code)

        receiver.route(endpoint.url, respond)
        result = await service.deliver(endpoint, "call.completed", {})
        outcomes[code] = result.success

    assert outcomes == {199: False, 200: True, 204: True, 299: True, 300: False, 404: False}


async def test_connection_failure_records_status_zero(
    session_factory, http_client, receiver, make_endpoint, fetch_deliveries, test_settings
):
    endpoint = await make_endpoint()

    async def refuse(request):
        raise httpx.ConnectError("Connection refused", request=request)

    receiver.route(endpoint.url, refuse)
    service = DeliveryService(session_factory, http_client, test_settings)

    result = await service.deliver(endpoint, "call.completed", {})

    assert result.success is False
    assert result.status_code == 0
    assert "Connection refused" in result.response_body

    [row] = await fetch_deliveries()
    assert row.status_code == 0
    assert row.success is False

    async with session_factory() as db:
        refreshed = await db.get(type(endpoint), endpoint.id)
    assert refreshed.last_triggered_at is not None


async def test_timeout_records_status_zero(
    session_factory, http_client, receiver, make_endpoint, fetch_deliveries, test_settings
):
    endpoint = await make_endpoint()

    async def hang(request):
        await asyncio.sleep(5)
        return httpx.Response(200)

    receiver.route(endpoint.url, hang)
    service = DeliveryService(session_factory, http_client, test_settings)

    result = await service.deliver(endpoint, "call.completed", {})

    assert result.success is False
    assert result.status_code == 0
    assert "timed out" in result.response_body

    [row] = await fetch_deliveries()
    assert row.status_code == 0


async def test_response_body_truncated_to_limit(
    session_factory, http_client, receiver, make_endpoint, fetch_deliveries, test_settings
):
    endpoint = await make_endpoint()

    async def verbose(request):
        return httpx.Response(500, content=b"x" * 10_000)

    receiver.route(endpoint.url, verbose)
    service = DeliveryService(session_factory, http_client, test_settings)

    result = await service.deliver(endpoint, "call.completed", {})

    assert len(result.response_body.encode()) == 1024
    [row] = await fetch_deliveries()
    assert len(row.response_body.encode()) <= 1024


async def test_truncation_never_splits_multibyte_characters(
    session_factory, http_client, receiver, make_endpoint, test_settings
):
    endpoint = await make_endpoint()

    async def unicode_page(request):
        return httpx.Response(500, content=("é" * 2000).encode())

    receiver.route(endpoint.url, unicode_page)
    service = DeliveryService(session_factory, http_client, test_settings)

    result = await service.deliver(endpoint, "call.completed", {})

    assert len(result.response_body.encode()) <= 1024
    assert set(result.response_body) == {"é"}
