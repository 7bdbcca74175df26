"""Prometheus metric definitions for the payment service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total payment requests", ["service", "operation"])
payment_success_total = Counter("payment_success_total", "Total completed payments", ["service"])
payment_failure_total = Counter("payment_failure_total", "Total failed payments", ["service", "stage"])
payment_latency_seconds = Histogram("payment_latency_seconds", "Payment request latency seconds", ["service", "operation"])
idempotent_replays_total = Counter(
    "idempotent_replays_total",
    "Creation requests answered from an existing idempotency key",
    ["service"],
)
provider_calls_total = Counter(
    "provider_calls_total",
    "Provider gateway calls by operation and outcome",
    ["service", "operation", "outcome"],
)
provider_latency_seconds = Histogram(
    "provider_latency_seconds",
    "Provider gateway call latency seconds",
    ["service", "operation"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
