from __future__ import annotations

from prometheus_client import Counter, Histogram, generate_latest


API_REQUESTS_TOTAL = Counter(
    "gee_api_requests_total",
    "Total backend API calls issued by the client.",
    labelnames=("method", "endpoint", "outcome"),
)

API_REQUEST_DURATION_SECONDS = Histogram(
    "gee_api_request_duration_seconds",
    "Backend API call duration in seconds, retries included.",
    labelnames=("method", "endpoint"),
    buckets=(0.1, 0.5, 1.0, 3.0, 10.0, 30.0, 60.0, 120.0),
)

API_RETRIES_TOTAL = Counter(
    "gee_api_retries_total",
    "Total retried backend API calls after a transient failure.",
    labelnames=("method", "endpoint"),
)


def record_api_request(method: str, endpoint: str, success: bool, duration_seconds: float) -> None:
    m = method.upper().strip()
    e = endpoint.strip() or "_unknown"
    outcome = "success" if success else "failure"
    API_REQUESTS_TOTAL.labels(method=m, endpoint=e, outcome=outcome).inc()
    API_REQUEST_DURATION_SECONDS.labels(method=m, endpoint=e).observe(max(0.0, duration_seconds))


def record_api_retry(method: str, endpoint: str) -> None:
    API_RETRIES_TOTAL.labels(method=method.upper().strip(), endpoint=endpoint.strip() or "_unknown").inc()


def render_metrics() -> bytes:
    return generate_latest()
