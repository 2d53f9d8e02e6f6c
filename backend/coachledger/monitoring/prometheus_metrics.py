"""
Prometheus metrics for the booking and credit-ledger engine.

Service timings are fed by the @measure_operation decorator; ledger counters
are incremented by the ledger services after each guarded balance write.
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

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "coachledger_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "coachledger_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "coachledger_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# Ledger counters
ledger_movements_total = Counter(
    "coachledger_ledger_movements_total",
    "Session credits moved through the ledger",
    ["source", "kind"],  # source: package | subscription; kind: debit | credit | adjust | replenish
    registry=REGISTRY,
)

ledger_rejections_total = Counter(
    "coachledger_ledger_rejections_total",
    "Ledger writes rejected by a balance guard",
    ["source", "reason"],
    registry=REGISTRY,
)

bookings_swept_total = Counter(
    "coachledger_bookings_swept_total",
    "Bookings auto-completed by the sweep",
    registry=REGISTRY,
)

checkin_consumptions_total = Counter(
    "coachledger_checkin_consumptions_total",
    "Monthly check-in allowance consumption attempts",
    ["outcome"],  # consumed | already_used
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
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'create_booking')
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
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts

        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            payload = PrometheusMetrics._cache_payload

        return cast(bytes, payload)

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None

    # Domain helpers
    @staticmethod
    def inc_ledger_movement(source: str, kind: str, amount: int = 1) -> None:
        """Count credits moved by a successful ledger write."""
        ledger_movements_total.labels(source=source, kind=kind).inc(abs(amount))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_ledger_rejection(source: str, reason: str) -> None:
        ledger_rejections_total.labels(source=source, reason=reason).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_bookings_swept(count: int) -> None:
        if count:
            bookings_swept_total.inc(count)
            PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_checkin_consumption(outcome: str) -> None:
        checkin_consumptions_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()


# Singleton instance
prometheus_metrics = PrometheusMetrics()
