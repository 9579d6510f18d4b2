"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Booking metrics
booking_attempts = Counter(
    "table_booking_attempts_total",
    "Total booking creation attempts",
    ["status"],  # success, invalid, no_availability, error
)

booking_latency = Histogram(
    "table_booking_latency_seconds",
    "Booking creation latency",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

reservation_conflicts = Counter(
    "table_reservation_conflicts_total",
    "Reservation attempts that lost a race for a table slot",
    ["operation"],  # create, relocate
)

status_transitions = Counter(
    "table_booking_status_transitions_total",
    "Booking status transitions",
    ["from_status", "to_status"],
)

# Cache metrics
cache_operations = Counter(
    "table_booking_cache_operations_total",
    "Cache operations",
    ["operation", "result"],  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, invalid, no_availability, error"""
    booking_attempts.labels(status=status).inc()


def record_reservation_conflict(operation: str):
    reservation_conflicts.labels(operation=operation).inc()


def record_status_transition(from_status: str, to_status: str):
    status_transitions.labels(from_status=from_status, to_status=to_status).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
