"""
Webhook endpoint API routes.

Read-only views of an organisation's endpoints and their delivery history,
plus a connectivity test. Endpoint creation and deactivation are handled
elsewhere.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from webhook_dispatch.database import get_db
from webhook_dispatch.dependencies.auth import get_current_user, TokenPayload
from webhook_dispatch.dependencies.services import get_dispatch_service
from webhook_dispatch.models.delivery import WebhookDelivery
from webhook_dispatch.models.endpoint import WebhookEndpoint
from webhook_dispatch.schemas.dispatch import DirectDispatch
from webhook_dispatch.services.delivery_service import isoformat, utc_now
from webhook_dispatch.services.dispatch_service import DispatchService
from webhook_dispatch.services.endpoint_service import EndpointService


router = APIRouter(prefix="/api/webhooks/endpoints", tags=["webhooks"])

PING_EVENT_TYPE = "test.ping"


class EndpointResponse(BaseModel):
    """Response model for an endpoint. The secret is never returned."""
    id: str
    url: str
    description: str | None = None
    event_types: list[str]
    is_active: bool
    has_secret: bool
    last_triggered_at: str | None = None
    created_at: str | None = None


class DeliveryResponse(BaseModel):
    """Response model for a delivery attempt."""
    id: str
    event_type: str
    status_code: int
    success: bool
    response_body: str | None = None
    attempted_at: str


class PingResponse(BaseModel):
    """Outcome of a connectivity test."""
    delivered: bool
    status_code: int
    delivery_id: str
    response_body: str


def endpoint_to_response(endpoint: WebhookEndpoint) -> EndpointResponse:
    """Convert WebhookEndpoint model to EndpointResponse."""
    return EndpointResponse(
        id=endpoint.id,
        url=endpoint.url,
        description=endpoint.description,
        event_types=list(endpoint.event_types or []),
        is_active=endpoint.is_active,
        has_secret=bool(endpoint.secret),
        last_triggered_at=endpoint.last_triggered_at.isoformat() if endpoint.last_triggered_at else None,
        created_at=endpoint.created_at.isoformat() if endpoint.created_at else None,
    )


def delivery_to_response(delivery: WebhookDelivery) -> DeliveryResponse:
    """Convert WebhookDelivery model to DeliveryResponse."""
    return DeliveryResponse(
        id=delivery.id,
        event_type=delivery.event_type,
        status_code=delivery.status_code,
        success=delivery.success,
        response_body=delivery.response_body,
        attempted_at=delivery.attempted_at.isoformat(),
    )


async def get_endpoint_or_404(
    endpoint_id: str,
    token: TokenPayload,
    db: AsyncSession
) -> WebhookEndpoint:
    endpoint = await EndpointService(db).get_for_organisation(token.org_id, endpoint_id)
    if not endpoint:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Endpoint not found"
        )
    return endpoint


@router.get("/", response_model=list[EndpointResponse])
async def list_endpoints(
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the organisation's webhook endpoints."""
    endpoints = await EndpointService(db).list_for_organisation(token.org_id)
    return [endpoint_to_response(ep) for ep in endpoints]


@router.get("/{endpoint_id}/deliveries", response_model=list[DeliveryResponse])
async def list_deliveries(
    endpoint_id: str,
    limit: int = 20,
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Recent delivery attempts for one endpoint, newest first."""
    await get_endpoint_or_404(endpoint_id, token, db)

    limit = max(1, min(limit, 100))
    deliveries = await EndpointService(db).recent_deliveries(token.org_id, endpoint_id, limit=limit)
    return [delivery_to_response(d) for d in deliveries]


@router.post("/{endpoint_id}/test", response_model=PingResponse)
async def ping_endpoint(
    endpoint_id: str,
    token: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    dispatch_service: DispatchService = Depends(get_dispatch_service)
):
    """
    Send a test.ping event to one endpoint.

    The endpoint receives it regardless of its subscribed event types.
    """
    endpoint = await get_endpoint_or_404(endpoint_id, token, db)

    if not endpoint.is_active:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Endpoint is inactive"
        )

    results = await dispatch_service.dispatch(DirectDispatch(
        organisation_id=token.org_id,
        event_type=PING_EVENT_TYPE,
        endpoint_id=endpoint.id,
        payload={
            "message": "Test webhook delivery",
            "timestamp": isoformat(utc_now()),
        },
    ))

    if not results:
        # Deactivated between the lookup and the dispatch
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Endpoint is inactive"
        )

    result = results[0]
    return PingResponse(
        delivered=result.success,
        status_code=result.status_code,
        delivery_id=result.delivery_id,
        response_body=result.response_body,
    )
