"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
generation_jobs_created_total = Counter(
    "generation_jobs_created_total",
    "Total number of generation jobs created",
    ["style_id"],
)

generation_jobs_dispatch_failed_total = Counter(
    "generation_jobs_dispatch_failed_total",
    "Jobs that failed to reach the queue",
    ["error_code"],
)

generation_jobs_completed_total = Counter(
    "generation_jobs_completed_total",
    "Total number of completed generation jobs",
    ["style_id"],
)

generation_jobs_failed_total = Counter(
    "generation_jobs_failed_total",
    "Total number of failed generation jobs",
    ["style_id", "reason"],
)

generated_photos_total = Counter(
    "generated_photos_total",
    "Photos produced by the generation worker",
    ["status"],  # success, error
)

queue_publish_total = Counter(
    "queue_publish_total",
    "Queue publish attempts",
    ["status"],  # published, failed
)

refunds_total = Counter(
    "refunds_total",
    "Payment refund attempts by outcome",
    ["outcome"],  # succeeded, conflict, gateway_error, no_payment
)

compensation_inconsistencies_total = Counter(
    "compensation_inconsistencies_total",
    "Refund and job state diverged during compensation",
)

payment_webhooks_total = Counter(
    "payment_webhooks_total",
    "Payment gateway notifications",
    ["status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
payment_gateway_duration_seconds = Histogram(
    "payment_gateway_duration_seconds",
    "Payment gateway request duration",
    ["method"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30],
)

image_generation_duration_seconds = Histogram(
    "image_generation_duration_seconds",
    "Image provider request duration",
    buckets=[1, 5, 10, 30, 60, 120, 300],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
