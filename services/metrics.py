"""
Prometheus Metrics Module
Version: 1.0.0

Booking engine metrics.

Usage:
    from services.metrics import record_booking_operation, BOOKING_CONFLICTS

    record_booking_operation("create", duration_seconds=0.02, outcome="success")
    BOOKING_CONFLICTS.labels(reason="overlap").inc()
"""
from prometheus_client import Counter, Histogram, Gauge, Info, REGISTRY
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response


# =============================================================================
# APPLICATION INFO
# =============================================================================

APP_INFO = Info(
    'drivenow_app',
    'Application information'
)


# =============================================================================
# REQUEST METRICS
# =============================================================================

REQUEST_DURATION = Histogram(
    'drivenow_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)


# =============================================================================
# BOOKING METRICS
# =============================================================================

BOOKING_OPERATION_DURATION = Histogram(
    'drivenow_booking_operation_duration_seconds',
    'Booking operation duration in seconds',
    ['operation', 'outcome'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

BOOKING_OPERATIONS_TOTAL = Counter(
    'drivenow_booking_operations_total',
    'Total booking operations',
    ['operation', 'outcome']
)

BOOKING_CONFLICTS = Counter(
    'drivenow_booking_conflicts_total',
    'Rejected reservations by reason',
    ['reason']  # 'vehicle_unavailable', 'overlap', 'driver_unavailable', 'concurrent_write'
)

STATUS_TRANSITIONS = Counter(
    'drivenow_booking_status_transitions_total',
    'Committed booking status transitions',
    ['from_status', 'to_status']
)

LOCK_WAITERS = Gauge(
    'drivenow_resource_lock_waiters',
    'Coroutines currently waiting for a resource lock'
)


# =============================================================================
# NOTIFICATION METRICS
# =============================================================================

NOTIFICATIONS_TOTAL = Counter(
    'drivenow_notifications_total',
    'Booking lifecycle notifications',
    ['event', 'status']
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def set_app_info(version: str, environment: str):
    APP_INFO.info({
        'version': version,
        'environment': environment
    })


def record_booking_operation(operation: str, duration_seconds: float, outcome: str):
    """Record one booking operation with its duration and outcome label."""
    BOOKING_OPERATION_DURATION.labels(operation=operation, outcome=outcome).observe(duration_seconds)
    BOOKING_OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()


def record_request(method: str, endpoint: str, status_code: int, duration_seconds: float):
    REQUEST_DURATION.labels(
        method=method,
        endpoint=endpoint,
        status_code=str(status_code)
    ).observe(duration_seconds)


def get_metrics() -> Response:
    """Generate Prometheus metrics response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )
