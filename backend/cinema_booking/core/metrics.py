"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at the /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Lifecycle metrics
booking_transitions = Counter(
    'booking_transitions_total',
    'Booking and bundle status transitions',
    ['kind', 'to_status']  # kind: booking, bundle
)

booking_creations = Counter(
    'booking_creations_total',
    'Booking creation attempts',
    ['result']  # created, invalid
)

payment_verifications = Counter(
    'payment_verifications_total',
    'Admin payment verification outcomes',
    ['outcome']  # approved, rejected, seat_conflict, invalid_code
)

seat_conflict_check_latency = Histogram(
    'seat_conflict_check_latency_seconds',
    'Time spent computing occupied seats and overlap at verification',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Door scans
ticket_scans = Counter(
    'ticket_scans_total',
    'Ticket scan results',
    ['result']  # valid, already_used, invalid_format, not_found, invalid_code
)

# Storage
payment_proof_uploads = Counter(
    'payment_proof_uploads_total',
    'Payment proof upload attempts',
    ['backend', 'result']  # result: stored, failed
)

malformed_seat_rows = Counter(
    'malformed_seat_rows_total',
    'Seat lists that could not be parsed and were treated as empty'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

# Background sweep
expired_records = Counter(
    'expired_records_total',
    'Records force-transitioned by the expiry sweep',
    ['kind', 'to_status']
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_transition(kind: str, to_status: str):
    booking_transitions.labels(kind=kind, to_status=to_status).inc()


def record_verification(outcome: str):
    """Outcome: approved, rejected, seat_conflict, invalid_code"""
    payment_verifications.labels(outcome=outcome).inc()


def record_scan(result: str):
    ticket_scans.labels(result=result).inc()


def record_upload(backend: str, stored: bool):
    result = "stored" if stored else "failed"
    payment_proof_uploads.labels(backend=backend, result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
