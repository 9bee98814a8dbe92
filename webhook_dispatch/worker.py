"""
ARQ Background Worker for webhook dispatch.

Runs the retry sweep on a schedule and accepts queued dispatches.
Use: arq webhook_dispatch.worker.WorkerSettings
"""
import asyncio
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from webhook_dispatch.config import settings
from webhook_dispatch.database import AsyncSessionLocal
from webhook_dispatch.logging_config import configure_logging, get_logger
from webhook_dispatch.schemas.dispatch import DirectDispatch
from webhook_dispatch.dependencies.services import build_http_client
from webhook_dispatch.services.dispatch_service import DispatchService
from webhook_dispatch.services.retry_service import RetryService


async def startup(ctx: dict):
    """Open one outbound HTTP client for the worker's lifetime."""
    configure_logging()
    ctx["http_client"] = build_http_client(settings)


async def shutdown(ctx: dict):
    client = ctx.get("http_client")
    if client is not None:
        await client.aclose()


async def run_retry_sweep(ctx: dict) -> dict:
    """Scheduled retry sweep."""
    service = RetryService(AsyncSessionLocal, ctx["http_client"], settings)
    results = await service.sweep()
    return {
        "retried": len(results),
        "recovered": sum(1 for r in results if r.success),
    }


async def dispatch_event(
    ctx: dict,
    org_id: str,
    event_type: str,
    payload: Any,
    endpoint_id: str | None = None
) -> dict:
    """Queued direct dispatch."""
    service = DispatchService(AsyncSessionLocal, ctx["http_client"], settings)
    results = await service.dispatch(DirectDispatch(
        organisation_id=org_id,
        event_type=event_type,
        payload=payload,
        endpoint_id=endpoint_id,
    ))
    return {
        "endpoints": len(results),
        "delivered": sum(1 for r in results if r.success),
    }


async def enqueue_dispatch(
    org_id: str,
    event_type: str,
    payload: Any,
    endpoint_id: str | None = None
) -> bool:
    """Enqueue a dispatch for background processing using ARQ."""
    from arq import create_pool

    log = get_logger(org_id=org_id, event_type=event_type)
    try:
        redis = await create_pool(RedisSettings.from_dsn(settings.REDIS_URL))
        await redis.enqueue_job("dispatch_event", org_id, event_type, payload, endpoint_id)
        await redis.close()
    except Exception as e:
        log.warning("dispatch_enqueue_failed", error=str(e))
        return False

    log.info("dispatch_enqueued")
    return True


def sweep_minutes(interval: int) -> set[int]:
    """Minutes of the hour at which the sweep runs."""
    interval = max(1, min(interval, 60))
    return set(range(0, 60, interval))


# Register functions for ARQ
ARQ_FUNCTIONS = [
    dispatch_event,
]


async def main():
    """Run the worker using arq cli."""
    print("Use: arq webhook_dispatch.worker.WorkerSettings")
    print(f"Redis: {settings.REDIS_URL}")


class WorkerSettings:
    """Settings for ARQ worker - use with 'arq webhook_dispatch.worker.WorkerSettings'"""
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    job_timeout = 300
    max_tries = 1
    functions = ARQ_FUNCTIONS
    cron_jobs = [
        cron(run_retry_sweep, minute=sweep_minutes(settings.RETRY_SWEEP_MINUTES), run_at_startup=False),
    ]
    on_startup = startup
    on_shutdown = shutdown


if __name__ == "__main__":
    asyncio.run(main())
