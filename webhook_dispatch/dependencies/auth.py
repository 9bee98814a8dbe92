"""
Authentication dependencies for FastAPI.

The dispatch entry point accepts three kinds of caller:
  - internal services presenting X-Internal-Secret
  - the scheduler, identified by its marker header
  - external callers with a bearer token from the identity provider

SECURITY: All queries MUST include organisation_id filter.
Failure to do so will result in data leakage between tenants.
"""
import enum
import hmac
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from webhook_dispatch.config import Settings, get_settings
from webhook_dispatch.services.jwt_service import JWTService


# Security scheme
security = HTTPBearer()

INTERNAL_SECRET_HEADER = "x-internal-secret"


class DispatchAuthError(Exception):
    """Raised when a dispatch caller cannot be authenticated."""


class CallerKind(str, enum.Enum):
    """How a dispatch caller was authenticated."""
    INTERNAL = "internal"
    SCHEDULED = "scheduled"
    EXTERNAL = "external"


class TokenPayload(BaseModel):
    """JWT token payload model."""
    sub: str      # user_id
    org_id: str
    role: str = "member"
    email: str | None = None


@dataclass(frozen=True)
class IngestionAuthConfig:
    """Auth configuration injected into the ingestion gate."""
    internal_secret: str | None
    scheduler_header: str
    scheduler_header_value: str
    jwt_service: JWTService

    @classmethod
    def from_settings(cls, settings: Settings) -> "IngestionAuthConfig":
        return cls(
            internal_secret=settings.INTERNAL_API_SECRET,
            scheduler_header=settings.SCHEDULER_HEADER,
            scheduler_header_value=settings.SCHEDULER_HEADER_VALUE,
            jwt_service=JWTService(settings),
        )


def authenticate_caller(headers, config: IngestionAuthConfig) -> CallerKind:
    """
    Classify a dispatch caller from its request headers.

    Args:
        headers: Case-insensitive request headers
        config: Injected auth configuration

    Returns:
        The CallerKind that authenticated

    Raises:
        DispatchAuthError: no accepted credential was presented
    """
    presented = headers.get(INTERNAL_SECRET_HEADER)
    if config.internal_secret and presented and hmac.compare_digest(
        presented.encode(), config.internal_secret.encode()
    ):
        return CallerKind.INTERNAL

    if headers.get(config.scheduler_header) == config.scheduler_header_value:
        return CallerKind.SCHEDULED

    authorization = headers.get("authorization") or ""
    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token:
        raise DispatchAuthError("Missing bearer token")

    if config.jwt_service.verify_token(token.strip()) is None:
        raise DispatchAuthError("Invalid or expired token")

    return CallerKind.EXTERNAL


def check_dispatch_scope(
    headers,
    config: IngestionAuthConfig,
    caller: CallerKind,
    organisation_id: str
) -> None:
    """
    Ensure the caller may dispatch events for organisation_id.

    Internal and scheduled callers act for every tenant. An external
    caller only acts for the organisation in its token's org_id claim.

    Raises:
        DispatchAuthError: token is unusable or names another organisation
    """
    if caller is not CallerKind.EXTERNAL:
        return

    _, _, token = (headers.get("authorization") or "").partition(" ")
    claims = config.jwt_service.verify_token(token.strip()) if token else None
    if claims is None or claims.get("org_id") != organisation_id:
        raise DispatchAuthError("Token is not valid for this organisation")


def get_ingestion_auth_config(settings: Settings = Depends(get_settings)) -> IngestionAuthConfig:
    """Dependency building the ingestion auth config from settings."""
    return IngestionAuthConfig.from_settings(settings)


async def authenticate_dispatch_caller(
    request: Request,
    config: IngestionAuthConfig = Depends(get_ingestion_auth_config)
) -> CallerKind:
    """
    Dependency that authenticates a dispatch trigger.

    Raises DispatchAuthError (rendered as 401) before the body is read.
    """
    return authenticate_caller(request.headers, config)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_settings)
) -> TokenPayload:
    """
    Dependency that requires valid JWT token.

    Returns token payload if valid, raises 401 if invalid.

    Usage:
        @app.get("/protected")
        async def protected_route(user: TokenPayload = Depends(get_current_user)):
            ...
    """
    jwt_service = JWTService(settings)

    payload = jwt_service.verify_token(credentials.credentials)

    if payload is None or not payload.get("org_id"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return TokenPayload(**payload)
