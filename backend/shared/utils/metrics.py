"""
Prometheus metrics for Scoreline.
All collectors live here so every service exports the same names.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# ── Counters ────────────────────────────────────────────────────────────
PROVIDER_REQUESTS = Counter(
    "sl_provider_requests_total",
    "Total provider HTTP requests",
    ["provider", "status"],
)
RATE_LIMIT_REJECTIONS = Counter(
    "sl_rate_limit_rejections_total",
    "Provider calls rejected by the local token bucket",
    ["provider"],
)
RATE_LIMIT_CONSUMED = Counter(
    "sl_rate_limit_consumed_total",
    "Provider calls charged against the local token bucket",
    ["provider"],
)
GATEWAY_OUTCOMES = Counter(
    "sl_gateway_outcomes_total",
    "Gateway call outcomes per provider and operation",
    ["provider", "operation", "outcome"],
)
CIRCUIT_TRANSITIONS = Counter(
    "sl_circuit_transitions_total",
    "Circuit breaker state transitions",
    ["name", "to_state"],
)
RECONCILIATION_RESULTS = Counter(
    "sl_reconciliation_results_total",
    "Entity reconciliation results (ref_hit, name_link, created, conflict)",
    ["entity_type", "result"],
)
SYNC_ITEMS = Counter(
    "sl_sync_items_total",
    "Items processed by the sync pipelines",
    ["pipeline", "result"],
)
LIVE_MERGES = Counter(
    "sl_live_merges_total",
    "Live snapshots merged into or dropped from canonical matches",
    ["result"],
)
PREDICTIONS_GENERATED = Counter(
    "sl_predictions_generated_total",
    "Predictions persisted, by source",
    ["source"],
)
CACHE_LOOKUPS = Counter(
    "sl_cache_lookups_total",
    "Result cache lookups",
    ["namespace", "result"],
)
STREAM_EVENTS_SENT = Counter(
    "sl_stream_events_sent_total",
    "Events delivered to stream subscribers",
    ["event"],
)

# ── Histograms ──────────────────────────────────────────────────────────
PROVIDER_LATENCY = Histogram(
    "sl_provider_latency_seconds",
    "Provider request latency in seconds",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
SYNC_DURATION = Histogram(
    "sl_sync_duration_seconds",
    "Duration of a sync pipeline run",
    ["pipeline"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
CIRCUIT_STATE = Gauge(
    "sl_circuit_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["name"],
)
RATE_LIMIT_REMAINING = Gauge(
    "sl_rate_limit_remaining",
    "Tokens left in the provider bucket",
    ["provider"],
)
STREAM_SUBSCRIBERS = Gauge(
    "sl_stream_subscribers_active",
    "Currently registered event stream subscribers",
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def render_latest() -> tuple[bytes, str]:
    """Exposition payload and content type for a /metrics route."""
    return generate_latest(), CONTENT_TYPE_LATEST
