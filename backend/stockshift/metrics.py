"""Prometheus metrics for reconciliation observability."""
from __future__ import annotations

from prometheus_client import Counter, Histogram


RECONCILE_PASSES_TOTAL = Counter(
    "stockshift_reconcile_passes_total",
    "Reconciliation passes by classified product state",
    ["state"],
)

RECONCILE_FAILURES_TOTAL = Counter(
    "stockshift_reconcile_failures_total",
    "Reconciliation passes aborted by an error",
    ["trigger", "error_class"],
)

ACTIONS_TOTAL = Counter(
    "stockshift_actions_total",
    "Corrective actions applied or restored by outcome",
    ["action", "operation", "outcome"],
)

SORT_ORDER_SWITCHES_TOTAL = Counter(
    "stockshift_sort_order_switches_total",
    "Collection sort-mode switches",
    ["direction"],
)

LEASE_CONTENTION_TOTAL = Counter(
    "stockshift_lease_contention_total",
    "Reconciliation passes skipped because the product lease was held",
    ["trigger"],
)

ACTIVITY_WRITE_FAILURES_TOTAL = Counter(
    "stockshift_activity_write_failures_total",
    "Activity records that could not be persisted",
)

CATALOG_REQUESTS_TOTAL = Counter(
    "stockshift_catalog_requests_total",
    "Remote catalog GraphQL requests by operation and outcome",
    ["operation", "outcome"],
)

CATALOG_LATENCY_SECONDS = Histogram(
    "stockshift_catalog_latency_seconds",
    "Remote catalog GraphQL latency by operation",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 20, 40),
)

FULL_SYNC_PRODUCTS_TOTAL = Counter(
    "stockshift_full_sync_products_total",
    "Products visited by full sync by outcome",
    ["outcome"],
)

FULL_SYNC_DURATION_SECONDS = Histogram(
    "stockshift_full_sync_duration_seconds",
    "Full sync wall time",
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1200, 3600),
)
