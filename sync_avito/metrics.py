"""
Prometheus metrics for Avito API calls, reconciliation attempts, and token refreshes.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Example:
    >>> from sync_avito.metrics import sync_duration, syncs_total
    >>> with sync_duration.time():
    ...     outcome = reconcile_integration(engine, integration_id)
    >>> syncs_total.labels(status="success").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# API Metrics
# =============================================================================

api_requests = Counter(
    "avito_api_requests_total",
    "Total Avito API requests made",
    ["endpoint", "status_code"],
)
"""
Counter for API requests to Avito.

Labels:
    endpoint: Logical endpoint name (e.g., "prices", "bookings", "token")
    status_code: HTTP status code (e.g., "200", "404", "429")
"""

api_latency = Histogram(
    "avito_api_latency_seconds",
    "Avito API request latency in seconds",
    ["endpoint"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)
"""
Histogram for API request latency.

Labels:
    endpoint: Logical endpoint name
"""

api_retries = Counter(
    "avito_api_retries_total",
    "Total retries after HTTP 429 from Avito",
    ["endpoint"],
)
"""Counter for rate-limit retries, labelled by endpoint."""

# =============================================================================
# Sync Metrics
# =============================================================================

syncs_total = Counter(
    "avito_syncs_total",
    "Total reconciliation attempts",
    ["status"],
)
"""
Counter for reconciliation attempts.

Labels:
    status: success, partial (some operations failed) or failure (fatal)
"""

sync_duration = Histogram(
    "avito_sync_duration_seconds",
    "Duration of a reconciliation attempt in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, float("inf")),
)

bookings_upserted = Counter(
    "avito_bookings_upserted_total",
    "Remote bookings processed by the booking puller",
    ["result"],
)
"""
Labels:
    result: created, updated, skipped or errors
"""

# =============================================================================
# Token Metrics
# =============================================================================

token_cache_hits = Counter(
    "avito_token_cache_hits_total",
    "Total number of token cache hits",
)

token_refreshes = Counter(
    "avito_token_refreshes_total",
    "Total number of token grant requests",
    ["grant_type", "status"],
)
"""
Counter for token grant requests.

Labels:
    grant_type: authorization_code, refresh_token or client_credentials
    status: success or failure
"""
