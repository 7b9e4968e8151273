"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Booking metrics
booking_attempts = Counter(
    "tutorbook_booking_attempts_total",
    "Total booking attempts",
    ["session_type", "status"],  # created, conflict, race_lost, invalid
)

booking_conflicts = Counter(
    "tutorbook_booking_conflicts_total",
    "Rejected booking requests by conflict reason",
    ["reason"],
)

booking_latency = Histogram(
    "tutorbook_booking_latency_seconds",
    "Booking creation latency",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

recurring_requests = Counter(
    "tutorbook_recurring_requests_total",
    "Recurring booking requests",
    ["result"],  # created, rejected
)

lifecycle_transitions = Counter(
    "tutorbook_lifecycle_events_total",
    "Booking lifecycle events recorded",
    ["event"],
)

# Slot lock metrics
slot_lock_wait = Histogram(
    "tutorbook_slot_lock_wait_seconds",
    "Time spent waiting for a tutor slot lock",
    buckets=[0.0001, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

slot_lock_results = Counter(
    "tutorbook_slot_lock_total",
    "Slot lock acquisitions",
    ["strategy", "result"],  # acquired, timeout, error
)

# Payment metrics
payment_callbacks = Counter(
    "tutorbook_payment_callbacks_total",
    "Gateway callbacks by outcome",
    ["result"],  # applied, replayed, ignored
)

gateway_calls = Counter(
    "tutorbook_gateway_calls_total",
    "Outbound payment gateway calls",
    ["operation", "result"],
)

# Dispute metrics
dispute_resolutions = Counter(
    "tutorbook_dispute_resolutions_total",
    "Resolved disputes by outcome",
    ["outcome"],
)

refund_failures = Counter(
    "tutorbook_refund_failures_total",
    "Refund attempts that failed",
    ["kind"],  # payout_unavailable, transient, error
)

# Cache metrics
cache_operations = Counter(
    "tutorbook_cache_operations_total",
    "Cache operations",
    ["operation", "result"],
)

notification_failures = Counter(
    "tutorbook_notification_failures_total",
    "Notifications that could not be delivered",
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_booking_attempt(session_type: str, status: str) -> None:
    """Record booking attempt. Status: created, conflict, race_lost, invalid"""
    booking_attempts.labels(session_type=session_type, status=status).inc()


def record_conflict(reason: str) -> None:
    booking_conflicts.labels(reason=reason).inc()


def record_lifecycle_event(event: str) -> None:
    lifecycle_transitions.labels(event=event).inc()


def record_payment_callback(result: str) -> None:
    payment_callbacks.labels(result=result).inc()


def record_gateway_call(operation: str, result: str) -> None:
    gateway_calls.labels(operation=operation, result=result).inc()


def record_cache_operation(operation: str, hit: bool) -> None:
    cache_operations.labels(operation=operation, result="hit" if hit else "miss").inc()
