"""
Client helper for announcing events to the dispatch entry point.

Used by other services (sequence workers, call processors, ...) that
want their events fanned out to customer webhooks. Announcing is
non-critical: failures are logged and reported, never raised.
"""
from typing import Any

import httpx

from webhook_dispatch.config import Settings, settings as default_settings
from webhook_dispatch.logging_config import get_logger


async def announce_event(
    org_id: str,
    event_type: str,
    payload: Any,
    endpoint_id: str | None = None,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None
) -> bool:
    """
    Ask the dispatch service to deliver an event.

    Returns True if the dispatch request was accepted, False otherwise.
    """
    settings = settings or default_settings
    log = get_logger(org_id=org_id, event_type=event_type)

    body = {
        "organizationId": org_id,
        "eventType": event_type,
        "payload": payload,
    }
    if endpoint_id:
        body["endpointId"] = endpoint_id

    headers = {}
    if settings.INTERNAL_API_SECRET:
        headers["X-Internal-Secret"] = settings.INTERNAL_API_SECRET

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS) as own_client:
                response = await own_client.post(settings.DISPATCH_URL, json=body, headers=headers)
        else:
            response = await client.post(settings.DISPATCH_URL, json=body, headers=headers)
    except httpx.HTTPError as e:
        log.warning("event_announce_failed", error=str(e))
        return False

    if response.status_code != 200:
        log.warning("event_announce_rejected", status_code=response.status_code)
        return False

    log.info("event_announced")
    return True
