"""
Shared pytest fixtures for webhook dispatch tests.

Uses a throwaway SQLite database per test and httpx.MockTransport for
outbound webhook traffic, so no Postgres, Redis or network is needed.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from webhook_dispatch.config import Settings
from webhook_dispatch.models.base import Base
from webhook_dispatch.models.delivery import WebhookDelivery
from webhook_dispatch.models.endpoint import WebhookEndpoint


INTERNAL_SECRET = "internal-test-secret"
JWT_SECRET = "test-jwt-secret"


class RecordingTransport:
    """
    Mock webhook receiver.

    Routes requests by URL to a handler and keeps every request it saw.
    Unrouted URLs answer 200 "ok".
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes = {}

    def route(self, url: str, handler):
        self.routes[url] = handler

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(str(request.url))
        if handler is None:
            return httpx.Response(200, text="ok")
        return await handler(request)

    def to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]


@pytest.fixture
def test_settings():
    """Settings with fast timeouts and known secrets, ignoring any .env file."""
    return Settings(
        _env_file=None,
        WEBHOOK_DISPATCH_SECRET=INTERNAL_SECRET,
        JWT_SECRET_KEY=JWT_SECRET,
        JWT_AUDIENCE=None,
        WEBHOOK_TIMEOUT_SECONDS=0.5,
    )


@pytest.fixture
async def session_factory(tmp_path):
    """Async session factory bound to a fresh SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def receiver():
    return RecordingTransport()


@pytest.fixture
async def http_client(receiver):
    async with httpx.AsyncClient(transport=httpx.MockTransport(receiver)) as client:
        yield client


@pytest.fixture
def make_endpoint(session_factory):
    """Insert a webhook endpoint and return it."""

    async def _make_endpoint(
        org_id: str = "org1",
        url: str = "https://example.com/hook",
        secret: str | None = "s3cret",
        event_types: list[str] | None = None,
        is_active: bool = True,
        endpoint_id: str | None = None,
    ) -> WebhookEndpoint:
        endpoint = WebhookEndpoint(
            organisation_id=org_id,
            url=url,
            secret=secret,
            event_types=event_types if event_types is not None else ["call.completed"],
            is_active=is_active,
        )
        if endpoint_id:
            endpoint.id = endpoint_id
        async with session_factory() as db:
            db.add(endpoint)
            await db.commit()
            await db.refresh(endpoint)
        return endpoint

    return _make_endpoint


@pytest.fixture
def make_failure(session_factory):
    """Insert a failed delivery row at a given time."""

    async def _make_failure(
        endpoint: WebhookEndpoint,
        event_type: str,
        attempted_at: datetime,
        data=None,
        status_code: int = 500,
    ) -> WebhookDelivery:
        delivery = WebhookDelivery(
            endpoint_id=endpoint.id,
            organisation_id=endpoint.organisation_id,
            event_type=event_type,
            payload={
                "event": event_type,
                "timestamp": attempted_at.isoformat(),
                "data": data if data is not None else {"n": 1},
            },
            status_code=status_code,
            response_body="boom",
            success=False,
            attempted_at=attempted_at,
        )
        async with session_factory() as db:
            db.add(delivery)
            await db.commit()
        return delivery

    return _make_failure


@pytest.fixture
def fetch_deliveries(session_factory):
    """Load delivery rows, oldest first."""

    async def _fetch(endpoint_id: str | None = None) -> list[WebhookDelivery]:
        stmt = select(WebhookDelivery).order_by(WebhookDelivery.attempted_at)
        if endpoint_id:
            stmt = stmt.where(WebhookDelivery.endpoint_id == endpoint_id)
        async with session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
async def api_client(test_settings, session_factory, http_client):
    """ASGI client for the app, wired to the test database and mock receiver."""
    from webhook_dispatch.config import get_settings
    from webhook_dispatch.database import get_db, get_session_factory
    from webhook_dispatch.dependencies.services import get_http_client
    from webhook_dispatch.main import app

    async def override_db():
        async with session_factory() as session:
            yield session

    async def override_http_client():
        yield http_client

    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_http_client] = override_http_client

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def bearer_token(test_settings):
    """Mint identity-provider tokens for an organisation."""
    from webhook_dispatch.services.jwt_service import JWTService

    def _token(org_id: str = "org1") -> str:
        return JWTService(test_settings).create_token("user-1", org_id)

    return _token
