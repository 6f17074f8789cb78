"""
Prometheus metrics module for PeerTutor.

Service timings come from the @measure_operation decorator; the session
core adds counters for lifecycle transitions, booking locks, reminders and
outbox delivery. Everything lives on a private registry exposed at
``/metrics``.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Private registry, separate from the process default
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "peertutor_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "peertutor_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "peertutor_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# Session lifecycle
session_transitions_total = Counter(
    "peertutor_session_transitions_total",
    "Session status transitions",
    ["from_status", "to_status"],
    registry=REGISTRY,
)

sessions_booked_total = Counter(
    "peertutor_sessions_booked_total",
    "Sessions created by booking",
    ["delivery_type", "recurring"],
    registry=REGISTRY,
)

booking_lock_total = Counter(
    "peertutor_booking_lock_total",
    "Booking lock acquisition outcomes",
    ["outcome"],  # acquired | contended | degraded
    registry=REGISTRY,
)

reminders_sent_total = Counter(
    "peertutor_reminders_sent_total",
    "Reminders claimed and enqueued by the sweep",
    registry=REGISTRY,
)

# Notification outbox
notifications_outbox_total = Counter(
    "peertutor_notifications_outbox_total",
    "Total notification outbox events by terminal status",
    ["status", "event_type"],
    registry=REGISTRY,
)

notifications_outbox_attempt_total = Counter(
    "peertutor_notifications_outbox_attempt_total",
    "Number of notification outbox delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)

notifications_dispatch_seconds = Histogram(
    "peertutor_notifications_dispatch_seconds",
    "Notification provider dispatch duration in seconds",
    ["event_type"],
    registry=REGISTRY,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


class PrometheusMetrics:
    """Recording helpers over the module-level collectors."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'SessionLifecycleService')
            operation: Operation name (e.g., 'book_session')
            duration: Operation duration in seconds
            status: 'success' or 'error'
            error_type: Exception class name if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_transition(from_status: str, to_status: str) -> None:
        session_transitions_total.labels(from_status=from_status, to_status=to_status).inc()

    @staticmethod
    def record_booking(delivery_type: str, recurring: bool, count: int = 1) -> None:
        sessions_booked_total.labels(
            delivery_type=delivery_type, recurring=str(recurring).lower()
        ).inc(count)

    @staticmethod
    def record_booking_lock(outcome: str) -> None:
        booking_lock_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_reminders_sent(count: int) -> None:
        if count:
            reminders_sent_total.inc(count)

    @staticmethod
    def record_notification_attempt(event_type: str) -> None:
        """Increment attempt counter for outbox delivery."""
        notifications_outbox_attempt_total.labels(event_type=event_type).inc()

    @staticmethod
    def record_notification_outcome(event_type: str, status: str) -> None:
        """Record terminal outcome for outbox delivery."""
        notifications_outbox_total.labels(status=status, event_type=event_type).inc()

    @staticmethod
    def observe_notification_dispatch(event_type: str, duration: float) -> None:
        notifications_dispatch_seconds.labels(event_type=event_type).observe(max(duration, 0.0))

    @staticmethod
    def get_metrics() -> bytes:
        """Current registry in Prometheus text format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
