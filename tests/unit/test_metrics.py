"""Unit tests for Prometheus metrics exposition."""

from services.shared import metrics


def test_exposition_includes_lifecycle_counters() -> None:
    metrics.invoices_created_total.labels(source_kind="HYBRID").inc()
    metrics.total_source_total.labels(source="products").inc()

    body, content_type = metrics.get_metrics()

    assert b'invoices_created_total{source_kind="HYBRID"}' in body
    assert b'invoice_total_source_total{source="products"}' in body
    assert content_type.startswith("application/openmetrics-text")


def test_service_info_exposed() -> None:
    metrics.record_service_info("invoice-lifecycle-engine", "1.2.3", "staging")

    body, _ = metrics.get_metrics()

    assert b"invoice_service_info{" in body
    assert b'environment="staging"' in body
    assert b'version="1.2.3"' in body
