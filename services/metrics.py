"""
Prometheus Metrics Module
Version: 2.0.0

Proxy metrics for monitoring and alerting.

Usage:
    from services.metrics import record_upstream_call

    record_upstream_call("n8n", status_code=200, duration_seconds=0.42)
"""
from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, Info, generate_latest


# =============================================================================
# APPLICATION INFO
# =============================================================================

APP_INFO = Info(
    'cf_booking_app',
    'Application information'
)


# =============================================================================
# REQUEST METRICS
# =============================================================================

REQUEST_DURATION = Histogram(
    'cf_booking_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

REQUEST_COUNT = Counter(
    'cf_booking_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)


# =============================================================================
# UPSTREAM METRICS (n8n webhook, Apps Scripts)
# =============================================================================

UPSTREAM_REQUESTS = Counter(
    'cf_booking_upstream_requests_total',
    'Total upstream requests',
    ['integration', 'status_code']
)

UPSTREAM_DURATION = Histogram(
    'cf_booking_upstream_duration_seconds',
    'Upstream request duration',
    ['integration'],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

IDEMPOTENCY_MISMATCHES = Counter(
    'cf_booking_idempotency_mismatch_total',
    'Gateway responses whose request_id did not echo the submitted one'
)

LOGIN_ATTEMPTS = Counter(
    'cf_booking_login_attempts_total',
    'Login attempts by outcome',
    ['outcome']  # 'success', 'rejected', 'rate_limited', 'error'
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def set_app_info(version: str, environment: str):
    APP_INFO.info({
        'version': version,
        'environment': environment
    })


def record_request(method: str, endpoint: str, status_code: int, duration_seconds: float):
    REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
    REQUEST_DURATION.labels(
        method=method, endpoint=endpoint, status_code=str(status_code)
    ).observe(duration_seconds)


def record_upstream_call(integration: str, status_code: int, duration_seconds: float):
    """status_code 0 means the request never got an answer."""
    UPSTREAM_REQUESTS.labels(integration=integration, status_code=str(status_code)).inc()
    UPSTREAM_DURATION.labels(integration=integration).observe(duration_seconds)


def get_metrics() -> Response:
    """Generate Prometheus metrics response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )
