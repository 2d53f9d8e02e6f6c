from __future__ import annotations

from coachledger.monitoring.prometheus_metrics import REGISTRY, PrometheusMetrics, prometheus_metrics


def _sample(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_ledger_movement_counts_absolute_amount() -> None:
    labels = {"source": "package", "kind": "adjust"}
    before = _sample("coachledger_ledger_movements_total", labels)

    prometheus_metrics.inc_ledger_movement("package", "adjust", -3)

    assert _sample("coachledger_ledger_movements_total", labels) == before + 3


def test_zero_swept_bookings_not_counted() -> None:
    before = _sample("coachledger_bookings_swept_total")

    prometheus_metrics.inc_bookings_swept(0)
    prometheus_metrics.inc_bookings_swept(2)

    assert _sample("coachledger_bookings_swept_total") == before + 2


def test_exposition_is_cached_until_next_write() -> None:
    first = prometheus_metrics.get_metrics()
    assert prometheus_metrics.get_metrics() is first

    prometheus_metrics.inc_checkin_consumption("consumed")

    refreshed = prometheus_metrics.get_metrics()
    assert refreshed is not first
    assert b"coachledger_checkin_consumptions_total" in refreshed
    assert PrometheusMetrics.get_content_type().startswith("text/plain")


def test_service_operation_error_recorded() -> None:
    labels = {"service": "LedgerService", "operation": "debit", "error_type": "ValueError"}
    before = _sample("coachledger_errors_total", labels)

    prometheus_metrics.record_service_operation(
        service="LedgerService", operation="debit", duration=0.01, status="error", error_type="ValueError"
    )

    assert _sample("coachledger_errors_total", labels) == before + 1
