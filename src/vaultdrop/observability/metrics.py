"""Prometheus metrics for vaultdrop.

Everything registers on the default registry so the process collectors
(CPU, memory, GC) ship alongside these on ``GET /metrics``.

Labels never carry a share token: HTTP metrics use the matched route
template, download metrics use the audit event type.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)

# ── HTTP ─────────────────────────────────────────────────────────────

HTTP_REQUESTS_TOTAL = Counter(
    "vaultdrop_http_requests_total",
    "HTTP requests by method, route template and status code.",
    labelnames=["method", "route", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "vaultdrop_http_request_duration_seconds",
    "HTTP request latency by method and route template.",
    labelnames=["method", "route"],
    buckets=_LATENCY_BUCKETS,
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "vaultdrop_http_requests_in_flight",
    "HTTP requests currently being served.",
    registry=REGISTRY,
)

# ── Downloads ────────────────────────────────────────────────────────

DOWNLOAD_ATTEMPTS_TOTAL = Counter(
    "vaultdrop_download_attempts_total",
    "Download attempts by audit event type.",
    labelnames=["outcome"],
    registry=REGISTRY,
)

DOWNLOAD_COMMIT_SECONDS = Histogram(
    "vaultdrop_download_commit_seconds",
    "Time spent in the usage ledger, lock wait included.",
    buckets=_LATENCY_BUCKETS,
    registry=REGISTRY,
)

CONTENT_DECODE_FAILURES_TOTAL = Counter(
    "vaultdrop_content_decode_failures_total",
    "Authorized downloads whose stored content could not be decoded.",
    registry=REGISTRY,
)

AUDIT_APPEND_FAILURES_TOTAL = Counter(
    "vaultdrop_audit_append_failures_total",
    "Denial audit events the store refused to write.",
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Prometheus exposition body and its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
