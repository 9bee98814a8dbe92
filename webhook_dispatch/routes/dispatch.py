"""
Webhook dispatch entry point.

Other services (and the scheduler) call this route to announce events
or to trigger a retry sweep. The response only says whether the request
was accepted; individual delivery outcomes live in webhook_deliveries.
"""
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from webhook_dispatch.dependencies.auth import (
    CallerKind,
    IngestionAuthConfig,
    authenticate_dispatch_caller,
    check_dispatch_scope,
    get_ingestion_auth_config,
)
from webhook_dispatch.dependencies.services import get_dispatch_service, get_retry_service
from webhook_dispatch.logging_config import get_logger
from webhook_dispatch.routes.metrics import track_dispatch
from webhook_dispatch.schemas.dispatch import DirectDispatch, parse_dispatch_body
from webhook_dispatch.sentry_config import capture_exception
from webhook_dispatch.services.dispatch_service import DispatchService
from webhook_dispatch.services.retry_service import RetryService


router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.options("/dispatch")
async def dispatch_preflight():
    """CORS pre-flight, answered with an empty body."""
    return Response(status_code=200)


@router.post("/dispatch", response_model=dict)
async def dispatch(
    request: Request,
    caller: CallerKind = Depends(authenticate_dispatch_caller),
    auth_config: IngestionAuthConfig = Depends(get_ingestion_auth_config),
    dispatch_service: DispatchService = Depends(get_dispatch_service),
    retry_service: RetryService = Depends(get_retry_service)
):
    """
    Dispatch an event or run a retry sweep.

    Body with organizationId, eventType and payload: fan the event out
    to the organisation's subscribed endpoints (or to endpointId only).
    Anything else: re-drive recently failed deliveries.
    """
    log = get_logger(caller=caller.value)

    try:
        dispatch_request = parse_dispatch_body(await request.body())
    except Exception as e:
        return _internal_error(log, e)

    if isinstance(dispatch_request, DirectDispatch):
        # Raises DispatchAuthError (401) for a token scoped to another organisation
        check_dispatch_scope(
            request.headers, auth_config, caller, dispatch_request.organisation_id
        )

    try:
        if isinstance(dispatch_request, DirectDispatch):
            track_dispatch("direct")
            log.info(
                "dispatch_received",
                org_id=dispatch_request.organisation_id,
                event_type=dispatch_request.event_type,
                endpoint_id=dispatch_request.endpoint_id
            )
            await dispatch_service.dispatch(dispatch_request)
        else:
            track_dispatch("sweep")
            log.info("retry_sweep_received")
            await retry_service.sweep()
    except Exception as e:
        return _internal_error(log, e)

    return {"success": True}


def _internal_error(log, error: Exception) -> JSONResponse:
    log.error("webhook_dispatch_error", error=str(error), exc_info=True)
    capture_exception(error)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})
