"""
Prometheus metrics for the booking core.

Service timings come from the @measure_operation decorator on BaseService;
the domain counters below are incremented by the services that own each
event (reconciler, payment orchestrator, webhook ledger).
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so tests and workers never collide with the default one
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "cadence_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "cadence_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "cadence_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# Domain counters
bookings_confirmed_total = Counter(
    "cadence_bookings_confirmed_total",
    "Bookings that reached CONFIRMED",
    ["booking_type"],
    registry=REGISTRY,
)

capacity_conflicts_total = Counter(
    "cadence_capacity_conflicts_total",
    "Confirmations that lost the race for the last spot",
    registry=REGISTRY,
)

payment_holds_total = Counter(
    "cadence_payment_holds_total",
    "Payment hold lifecycle events",
    ["outcome"],  # created | voided | captured | capture_failed | init_failed
    registry=REGISTRY,
)

webhook_events_total = Counter(
    "cadence_webhook_events_total",
    "Processor webhook events by type and outcome",
    ["event_type", "outcome"],  # processed | duplicate | ignored | failed
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

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
            service: Service name (e.g., 'BookingReconciler')
            operation: Operation name (e.g., 'confirm_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()

        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_booking_confirmed(booking_type: str) -> None:
        bookings_confirmed_total.labels(booking_type=booking_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_capacity_conflict() -> None:
        capacity_conflicts_total.inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_payment_hold(outcome: str) -> None:
        payment_holds_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_webhook_event(event_type: str, outcome: str) -> None:
        webhook_events_total.labels(event_type=event_type, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        The payload is cached briefly so frequent scrapes don't re-render.
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts

        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
