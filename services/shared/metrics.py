"""Prometheus metrics for the invoice lifecycle engine.

Exposes key metrics for monitoring:
- Extraction outcomes and latency per provider
- Which source supplied each invoice total
- Duplicate service call outcomes
- Invoice creation counts by source kind
- Service name, version and environment

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, Info, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

# Service identity
service_info = Info("invoice_service", "Service name, version and deployment environment")

# Extraction metrics
extractions_total = Counter(
    "invoice_extractions_total",
    "Total document extraction attempts",
    ["provider", "status"],  # success, failed
)

extraction_duration_seconds = Histogram(
    "invoice_extraction_duration_seconds",
    "Document extraction duration in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

# Total reconciliation metrics
total_source_total = Counter(
    "invoice_total_source_total",
    "Invoice totals by the source that supplied them",
    ["source"],  # extracted, products, previous, default
)

# Duplicate service metrics
duplicate_service_calls_total = Counter(
    "duplicate_service_calls_total",
    "Calls made to the duplicate detection service",
    ["operation", "status"],  # success, failed
)

# Invoice lifecycle metrics
invoices_created_total = Counter(
    "invoices_created_total",
    "Total invoices created",
    ["source_kind"],  # FILE, FORM, HYBRID
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST


def record_service_info(name: str, version: str, environment: str) -> None:
    """Publish the running service's identity as an info metric."""
    service_info.info({"name": name, "version": version, "environment": environment})
