"""
Webhook Dispatch - reliable webhook delivery service

FastAPI application entry point.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import observability modules
from webhook_dispatch.config import settings
from webhook_dispatch.logging_config import configure_logging, get_logger
from webhook_dispatch.sentry_config import configure_sentry
from webhook_dispatch.middleware.logging import LoggingMiddleware
from webhook_dispatch.routes.metrics import router as metrics_router

# Import route modules
from webhook_dispatch.dependencies.auth import DispatchAuthError
from webhook_dispatch.routes.dispatch import router as dispatch_router
from webhook_dispatch.routes.endpoints import router as endpoints_router

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Signed, at-least-once webhook fan-out with a capped retry sweep",
)

# Add logging middleware FIRST (runs before other middleware)
app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(DispatchAuthError)
async def dispatch_auth_error_handler(request: Request, exc: DispatchAuthError):
    """Reject unauthenticated dispatch callers before any processing."""
    get_logger(route=request.url.path).warning("dispatch_unauthorized", reason=str(exc))
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

# Include dispatch entry point
app.include_router(dispatch_router)

# Include endpoint read routes
app.include_router(endpoints_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected"
    }
