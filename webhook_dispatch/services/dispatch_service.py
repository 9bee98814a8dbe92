"""
Fan-out coordinator.

Resolves the endpoints for one event and delivers to all of them
concurrently, waiting for every delivery to settle. A failing delivery
never cancels or delays its siblings.
"""
import asyncio

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from webhook_dispatch.config import Settings
from webhook_dispatch.logging_config import get_logger
from webhook_dispatch.schemas.dispatch import DirectDispatch
from webhook_dispatch.services.delivery_service import DeliveryService, DeliveryResult
from webhook_dispatch.services.endpoint_service import EndpointService


class DispatchService:
    """Dispatches a single event to every matching endpoint."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: httpx.AsyncClient,
        settings: Settings | None = None
    ):
        self.session_factory = session_factory
        self.delivery_service = DeliveryService(session_factory, client, settings)

    async def dispatch(self, event: DirectDispatch) -> list[DeliveryResult]:
        """
        Fan an event out to its endpoints.

        Returns one DeliveryResult per resolved endpoint, or an empty list
        when nothing matches. Unexpected per-delivery errors (e.g. the
        database going away) are re-raised only after every sibling
        delivery has settled.
        """
        log = get_logger(org_id=event.organisation_id, event_type=event.event_type)

        async with self.session_factory() as db:
            endpoints = await EndpointService(db).resolve(
                event.organisation_id,
                event.event_type,
                endpoint_id=event.endpoint_id
            )

        if not endpoints:
            log.info("dispatch_no_endpoints", endpoint_id=event.endpoint_id)
            return []

        outcomes = await asyncio.gather(
            *(
                self.delivery_service.deliver(endpoint, event.event_type, event.payload)
                for endpoint in endpoints
            ),
            return_exceptions=True
        )

        results = []
        errors = []
        for endpoint, outcome in zip(endpoints, outcomes):
            if isinstance(outcome, BaseException):
                log.error(
                    "webhook_delivery_error",
                    endpoint_id=endpoint.id,
                    error=str(outcome),
                    exc_info=outcome
                )
                errors.append(outcome)
            else:
                results.append(outcome)

        log.info(
            "dispatch_completed",
            endpoints=len(endpoints),
            delivered=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
            errored=len(errors)
        )

        if errors:
            raise errors[0]

        return results
