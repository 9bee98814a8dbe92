"""
Retry sweep for failed webhook deliveries.

Each run loads recent failures once, before making any new attempt:
  1. failed deliveries from the trailing window, oldest first, capped per run
  2. (endpoint, event type) groups with more than RETRY_MAX_FAILURES
     observed failures are excluded until they age out of the window
  3. one candidate per group, the latest failure
  4. candidates whose endpoint is still active are re-delivered with the
     original event type and payload

The cap counts every failure in the window, including the original one.
"""
import asyncio
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from webhook_dispatch.config import Settings, settings as default_settings
from webhook_dispatch.logging_config import get_logger
from webhook_dispatch.models.delivery import WebhookDelivery
from webhook_dispatch.routes.metrics import track_retry, track_retry_skipped
from webhook_dispatch.services.delivery_service import DeliveryService, DeliveryResult, utc_now
from webhook_dispatch.services.endpoint_service import EndpointService


def retry_key(delivery: WebhookDelivery) -> tuple[str, str]:
    return delivery.endpoint_id, delivery.event_type


def select_retry_candidates(
    failures: list[WebhookDelivery],
    max_failures: int
) -> list[WebhookDelivery]:
    """
    Apply the retry cap and deduplication to failures loaded oldest first.

    Returns at most one delivery per (endpoint, event type), the latest one,
    and none for groups whose failure count exceeds max_failures.
    """
    counts = Counter(retry_key(d) for d in failures)

    latest: dict[tuple[str, str], WebhookDelivery] = {}
    for delivery in failures:
        key = retry_key(delivery)
        if counts[key] > max_failures:
            continue
        latest[key] = delivery

    return list(latest.values())


def unwrap_payload(stored: Any) -> Any:
    """Recover the original event data from a stored envelope."""
    if isinstance(stored, dict) and stored.get("data") is not None:
        return stored["data"]
    return stored


class RetryService:
    """Re-drives recently failed deliveries."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: httpx.AsyncClient,
        settings: Settings | None = None
    ):
        self.session_factory = session_factory
        self.settings = settings or default_settings
        self.delivery_service = DeliveryService(session_factory, client, self.settings)

    async def load_recent_failures(self, db: AsyncSession, now: datetime) -> list[WebhookDelivery]:
        """Failed deliveries inside the retry window, oldest first."""
        cutoff = now - timedelta(hours=self.settings.RETRY_WINDOW_HOURS)
        stmt = (
            select(WebhookDelivery)
            .where(
                WebhookDelivery.success.is_(False),
                WebhookDelivery.attempted_at >= cutoff,
                WebhookDelivery.attempted_at <= now
            )
            .order_by(WebhookDelivery.attempted_at.asc())
            .limit(self.settings.RETRY_BATCH_SIZE)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def sweep(self, now: datetime | None = None) -> list[DeliveryResult]:
        """
        Run one retry sweep.

        Args:
            now: Sweep start time (defaults to the current UTC time)

        Returns:
            Results of the deliveries re-driven by this run
        """
        now = now or utc_now()
        log = get_logger(component="retry_sweep")

        async with self.session_factory() as db:
            failures = await self.load_recent_failures(db, now)
            candidates = select_retry_candidates(failures, self.settings.RETRY_MAX_FAILURES)
            endpoints = await EndpointService(db).get_active_by_ids(
                sorted({c.endpoint_id for c in candidates})
            )

        exhausted = len({retry_key(d) for d in failures}) - len(candidates)

        to_retry = [c for c in candidates if c.endpoint_id in endpoints]
        inactive = len(candidates) - len(to_retry)

        track_retry_skipped("exhausted", exhausted)
        track_retry_skipped("inactive", inactive)

        outcomes = await asyncio.gather(
            *(
                self.delivery_service.deliver(
                    endpoints[c.endpoint_id],
                    c.event_type,
                    unwrap_payload(c.payload)
                )
                for c in to_retry
            ),
            return_exceptions=True
        )

        results = []
        errors = []
        for candidate, outcome in zip(to_retry, outcomes):
            if isinstance(outcome, BaseException):
                log.error(
                    "webhook_retry_error",
                    endpoint_id=candidate.endpoint_id,
                    event_type=candidate.event_type,
                    error=str(outcome),
                    exc_info=outcome
                )
                errors.append(outcome)
            else:
                track_retry()
                results.append(outcome)

        log.info(
            "retry_sweep_completed",
            failures_loaded=len(failures),
            retried=len(to_retry),
            succeeded=sum(1 for r in results if r.success),
            skipped_exhausted=exhausted,
            skipped_inactive=inactive
        )

        if errors:
            raise errors[0]

        return results
