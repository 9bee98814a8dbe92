"""
Endpoint lookup for webhook dispatch.

SECURITY: All queries MUST include organisation_id filter.
Failure to do so will result in data leakage between tenants.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from webhook_dispatch.models.delivery import WebhookDelivery
from webhook_dispatch.models.endpoint import WebhookEndpoint


class EndpointService:
    """Service for resolving and reading webhook endpoints."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(
        self,
        org_id: str,
        event_type: str,
        endpoint_id: str | None = None
    ) -> list[WebhookEndpoint]:
        """
        Find the endpoints an event should be delivered to.

        Args:
            org_id: Organisation ID
            event_type: Event type being dispatched (e.g. "call.completed")
            endpoint_id: Optional explicit target. When given, subscriptions
                are ignored and only that endpoint is returned.

        Returns:
            Active matching endpoints, possibly empty
        """
        stmt = select(WebhookEndpoint).where(
            WebhookEndpoint.organisation_id == org_id,
            WebhookEndpoint.is_active.is_(True)
        )

        if endpoint_id:
            stmt = stmt.where(WebhookEndpoint.id == endpoint_id)
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

        result = await self.db.execute(stmt.order_by(WebhookEndpoint.created_at))
        # event_types is a JSON column, filtering happens in Python
        return [ep for ep in result.scalars().all() if ep.subscribes_to(event_type)]

    async def get_active_by_ids(self, endpoint_ids: list[str]) -> dict[str, WebhookEndpoint]:
        """Load active endpoints by ID, keyed by ID. Used by the retry sweep."""
        if not endpoint_ids:
            return {}
        stmt = select(WebhookEndpoint).where(
            WebhookEndpoint.id.in_(endpoint_ids),
            WebhookEndpoint.is_active.is_(True)
        )
        result = await self.db.execute(stmt)
        return {ep.id: ep for ep in result.scalars().all()}

    async def list_for_organisation(self, org_id: str) -> list[WebhookEndpoint]:
        """List every endpoint registered by an organisation."""
        stmt = (
            select(WebhookEndpoint)
            .where(WebhookEndpoint.organisation_id == org_id)
            .order_by(WebhookEndpoint.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_for_organisation(self, org_id: str, endpoint_id: str) -> WebhookEndpoint | None:
        """Get one endpoint, only if it belongs to the organisation."""
        stmt = select(WebhookEndpoint).where(
            WebhookEndpoint.id == endpoint_id,
            WebhookEndpoint.organisation_id == org_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def recent_deliveries(
        self,
        org_id: str,
        endpoint_id: str,
        limit: int = 20
    ) -> list[WebhookDelivery]:
        """Delivery history for an endpoint, newest first."""
        stmt = (
            select(WebhookDelivery)
            .where(
                WebhookDelivery.organisation_id == org_id,
                WebhookDelivery.endpoint_id == endpoint_id
            )
            .order_by(WebhookDelivery.attempted_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
