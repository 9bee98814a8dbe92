"""
Webhook Delivery Service

Performs exactly one signed HTTP POST to one endpoint and records
the outcome as a WebhookDelivery row.

Delivery failures (timeouts, refused connections, non-2xx responses)
never raise: they are captured in the returned DeliveryResult so that
one endpoint cannot abort its siblings during a fan-out. Storage
errors still propagate.
"""
import asyncio
import json
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from webhook_dispatch.config import Settings, settings as default_settings
from webhook_dispatch.logging_config import get_logger
from webhook_dispatch.models.delivery import WebhookDelivery
from webhook_dispatch.models.endpoint import WebhookEndpoint
from webhook_dispatch.routes.metrics import track_delivery
from webhook_dispatch.services.signer import sign_payload


@dataclass
class DeliveryResult:
    """Outcome of a single delivery attempt."""
    delivery_id: str
    endpoint_id: str
    event_type: str
    status_code: int
    success: bool
    response_body: str
    attempted_at: datetime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix."""
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_envelope(event_type: str, payload: Any, dispatched_at: datetime) -> dict:
    """Wrap an event payload in the outbound delivery envelope."""
    return {
        "event": event_type,
        "timestamp": isoformat(dispatched_at),
        "data": payload,
    }


def serialize_envelope(envelope: dict) -> bytes:
    """Serialize once; these exact bytes are both signed and sent."""
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False).encode()


def truncate_body(raw: bytes, limit: int) -> str:
    """Decode at most `limit` bytes, dropping any split trailing character."""
    return raw[:limit].decode("utf-8", errors="ignore")


class DeliveryService:
    """Delivers single events to single endpoints."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: httpx.AsyncClient,
        settings: Settings | None = None
    ):
        self.session_factory = session_factory
        self.client = client
        self.settings = settings or default_settings

    async def deliver(
        self,
        endpoint: WebhookEndpoint,
        event_type: str,
        payload: Any
    ) -> DeliveryResult:
        """
        Send one webhook and record the attempt.

        Args:
            endpoint: Target endpoint
            event_type: Event type (e.g. "lead.created")
            payload: Event data, placed under "data" in the envelope

        Returns:
            DeliveryResult describing the attempt. Never raises for
            network or HTTP failures.
        """
        log = get_logger(
            org_id=endpoint.organisation_id,
            endpoint_id=endpoint.id,
            event_type=event_type
        )

        envelope = build_envelope(event_type, payload, utc_now())
        body = serialize_envelope(envelope)
        delivery_id = str(uuid.uuid4())

        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": sign_payload(body, endpoint.secret),
            "X-Webhook-Event": event_type,
            "X-Webhook-Delivery": delivery_id,
            "User-Agent": self.settings.WEBHOOK_USER_AGENT,
        }

        limit = self.settings.WEBHOOK_RESPONSE_BODY_LIMIT
        timeout = self.settings.WEBHOOK_TIMEOUT_SECONDS
        start_time = time.time()

        try:
            status_code, raw_body = await asyncio.wait_for(
                self._post(endpoint.url, body, headers, limit),
                timeout=timeout
            )
            response_body = truncate_body(raw_body, limit)
        except asyncio.TimeoutError:
            status_code = 0
            response_body = f"Request timed out after {timeout:g}s"
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            status_code = 0
            response_body = truncate_body(
                (str(e) or "Connection failed").encode(), limit
            )

        success = 200 <= status_code < 300
        attempted_at = utc_now()
        duration_seconds = time.time() - start_time

        await self._record(
            endpoint=endpoint,
            event_type=event_type,
            envelope=envelope,
            status_code=status_code,
            response_body=response_body,
            success=success,
            attempted_at=attempted_at
        )

        track_delivery(success, duration_seconds)

        if success:
            log.info(
                "webhook_delivered",
                delivery_id=delivery_id,
                status_code=status_code,
                duration_ms=round(duration_seconds * 1000, 2)
            )
        else:
            log.warning(
                "webhook_delivery_failed",
                delivery_id=delivery_id,
                status_code=status_code,
                error=response_body if status_code == 0 else None,
                duration_ms=round(duration_seconds * 1000, 2)
            )

        return DeliveryResult(
            delivery_id=delivery_id,
            endpoint_id=endpoint.id,
            event_type=event_type,
            status_code=status_code,
            success=success,
            response_body=response_body,
            attempted_at=attempted_at
        )

    async def _post(
        self,
        url: str,
        body: bytes,
        headers: dict,
        limit: int
    ) -> tuple[int, bytes]:
        """POST the body and read at most `limit` bytes of the response."""
        async with self.client.stream("POST", url, content=body, headers=headers) as response:
            received = bytearray()
            try:
                async for chunk in response.aiter_bytes():
                    received.extend(chunk)
                    if len(received) >= limit:
                        break
            except httpx.HTTPError:
                # Status already received; an unreadable body is not a failed delivery
                received = bytearray()
            return response.status_code, bytes(received)

    async def _record(
        self,
        endpoint: WebhookEndpoint,
        event_type: str,
        envelope: dict,
        status_code: int,
        response_body: str,
        success: bool,
        attempted_at: datetime
    ) -> None:
        """Insert the delivery row and stamp the endpoint, in this task's own session."""
        async with self.session_factory() as db:
            db.add(WebhookDelivery(
                endpoint_id=endpoint.id,
                organisation_id=endpoint.organisation_id,
                event_type=event_type,
                payload=envelope,
                status_code=status_code,
                response_body=response_body,
                success=success,
                attempted_at=attempted_at
            ))
            # Stamped on every attempt: "we tried", not "we succeeded"
            await db.execute(
                update(WebhookEndpoint)
                .where(WebhookEndpoint.id == endpoint.id)
                .values(last_triggered_at=attempted_at)
            )
            await db.commit()
