"""
Prometheus metrics for the chat viewer.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Audit append outcome counter (action, result)
- Added messages counter

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: ok, failed
audit_appends_total = Counter(
    "audit_appends_total",
    "Audit log append outcomes",
    labelnames=["action", "result"]
)

messages_added_total = Counter(
    "messages_added_total",
    "Messages stored via POST /send"
)

# Using default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def normalize_path(path: str) -> str:
    """
    Collapse per-resource paths so labels stay low-cardinality.

    /chat/42?x=1 -> /chat/{chat_id}, /static/css/app.css -> /static
    """
    path = path.split("?")[0]
    if path.startswith("/chat/"):
        return "/chat/{chat_id}"
    if path.startswith("/static/"):
        return "/static"
    return path


def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = normalize_path(path)

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_audit_append(action: str, result: str) -> None:
    """Record whether an audit append succeeded ("ok") or not ("failed")."""
    audit_appends_total.labels(action=action, result=result).inc()


def record_message_added() -> None:
    messages_added_total.inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """Content type for the Prometheus exposition format."""
    return CONTENT_TYPE_LATEST
