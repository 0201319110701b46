"""
Prometheus metrics for the portfolio backend.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Admin login attempt counter (result)
- Contact submission and resume download counters

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Request latency histogram in seconds, default buckets
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: success, invalid_credentials, missing_fields
admin_login_attempts_total = Counter(
    "admin_login_attempts_total",
    "Admin login attempts by outcome",
    labelnames=["result"]
)

contact_submissions_total = Counter(
    "contact_submissions_total",
    "Accepted contact form submissions"
)

resume_downloads_total = Counter(
    "resume_downloads_total",
    "Resume downloads served"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template when matched (e.g. /api/admin/message/{message_id}),
            raw path otherwise
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_login_attempt(result: str) -> None:
    admin_login_attempts_total.labels(result=result).inc()


def record_contact_submission() -> None:
    contact_submissions_total.inc()


def record_resume_download() -> None:
    resume_downloads_total.inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
