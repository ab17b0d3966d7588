"""
Prometheus metrics for the token manager.

Tracks request performance, logins, session imports, sharing and token
validation outcomes.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Request metrics
http_requests_total = Counter(
    "token_manager_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "token_manager_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# Business metrics
login_total = Counter("token_manager_login_total", "Login attempts", ["status"])

session_import_total = Counter(
    "token_manager_session_import_total",
    "Session import attempts",
    ["status"],
)

token_share_total = Counter(
    "token_manager_token_share_total",
    "Share and reset-card operations",
    ["operation", "status"],
)

token_validation_total = Counter(
    "token_manager_token_validation_total",
    "Token validation results",
    ["result"],
)

rate_limit_hits_total = Counter(
    "token_manager_rate_limit_hits_total",
    "Total rate limit hits",
    ["limiter"],
)


def track_request_metrics(method: str, endpoint: str, status_code: int, duration: float):
    """Track HTTP request metrics."""
    http_requests_total.labels(method=method, endpoint=endpoint, status=status_code).inc()
    http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)


def track_login(success: bool):
    login_total.labels(status="success" if success else "failure").inc()


def track_session_import(status: str):
    """Track a session import outcome ("success" or a failure code)."""
    session_import_total.labels(status=status).inc()


def track_share(operation: str, success: bool):
    token_share_total.labels(operation=operation, status="success" if success else "failure").inc()


def track_token_validation(result: str):
    """Track a validation result: "valid", "invalid" or "error"."""
    token_validation_total.labels(result=result).inc()


def track_rate_limit_hit(limiter: str):
    rate_limit_hits_total.labels(limiter=limiter).inc()


async def metrics_endpoint():
    """
    Prometheus metrics endpoint.

    Returns:
        Response with Prometheus metrics in text format
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
