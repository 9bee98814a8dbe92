"""
Sentry configuration for error tracking.

Captures unhandled exceptions raised while ingesting dispatch requests.
"""
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from webhook_dispatch.config import settings
from webhook_dispatch.logging_config import get_logger

logger = get_logger(component="sentry")


def configure_sentry():
    """
    Initialize Sentry with FastAPI and SQLAlchemy integrations.

    Requires SENTRY_DSN environment variable to be set.
    """
    dsn = settings.SENTRY_DSN

    if not dsn:
        logger.warning("sentry_disabled", reason="SENTRY_DSN not set")
        return

    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        before_send=strip_secrets,
        # Sample rate: capture 10% of transactions for performance monitoring
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=settings.APP_VERSION,
    )

    logger.info("sentry_initialized", environment=settings.ENVIRONMENT)


def strip_secrets(event, hint):
    """
    Drop auth headers from captured request data.

    Internal secrets and bearer tokens must never leave the process.
    """
    headers = (event.get("request") or {}).get("headers") or {}
    for name in list(headers):
        if name.lower() in ("authorization", "x-internal-secret"):
            headers[name] = "[Filtered]"
    return event


def capture_exception(exc_info=None):
    """
    Capture an exception to Sentry.

    Usage:
        try:
            # some code
        except Exception:
            capture_exception()
    """
    if sentry_sdk.get_client().is_active():
        sentry_sdk.capture_exception(exc_info)
