"""
Service dependencies for FastAPI.

Each request gets its own outbound HTTP client, shared by the concurrent
deliveries of that request and closed when the request finishes.
"""
from typing import AsyncIterator

import httpx
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from webhook_dispatch.config import Settings, get_settings
from webhook_dispatch.database import get_session_factory
from webhook_dispatch.services.dispatch_service import DispatchService
from webhook_dispatch.services.retry_service import RetryService


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Outbound client for webhook deliveries. Redirects are not followed."""
    return httpx.AsyncClient(
        timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
        follow_redirects=False,
    )


async def get_http_client(
    settings: Settings = Depends(get_settings)
) -> AsyncIterator[httpx.AsyncClient]:
    async with build_http_client(settings) as client:
        yield client


def get_dispatch_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings)
) -> DispatchService:
    return DispatchService(session_factory, client, settings)


def get_retry_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings)
) -> RetryService:
    return RetryService(session_factory, client, settings)
