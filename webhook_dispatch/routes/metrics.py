"""
Prometheus metrics endpoint.

Exposes webhook dispatch metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Delivery Metrics
# ============================================

webhook_deliveries_total = Counter(
    'webhook_deliveries_total',
    'Total webhook delivery attempts',
    ['status']
)

webhook_delivery_duration = Histogram(
    'webhook_delivery_duration_seconds',
    'Outbound webhook delivery duration in seconds',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Dispatch & Retry Metrics
# ============================================

webhook_dispatches_total = Counter(
    'webhook_dispatches_total',
    'Total dispatch requests accepted',
    ['mode']
)

webhook_retries_total = Counter(
    'webhook_retries_total',
    'Total deliveries re-driven by the retry sweep'
)

webhook_retries_skipped_total = Counter(
    'webhook_retries_skipped_total',
    'Failed deliveries the retry sweep did not re-drive',
    ['reason']
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """
    Record HTTP request metrics.

    Called by the logging middleware after each request.
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()

    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_delivery(success: bool, duration_seconds: float):
    """Record one outbound delivery attempt."""
    webhook_deliveries_total.labels(status="success" if success else "failed").inc()
    webhook_delivery_duration.observe(duration_seconds)


def track_dispatch(mode: str):
    """Record an accepted dispatch request ("direct" or "sweep")."""
    webhook_dispatches_total.labels(mode=mode).inc()


def track_retry():
    """Record a delivery re-driven by the sweep."""
    webhook_retries_total.inc()


def track_retry_skipped(reason: str, count: int = 1):
    """Record failures excluded from a sweep."""
    if count:
        webhook_retries_skipped_total.labels(reason=reason).inc(count)


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
