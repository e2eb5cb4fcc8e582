"""Prometheus metrics collection and export.

This module provides Prometheus instrumentation for the deCentra client,
covering remote calls, batch resolution, feed shaping, optimistic mutations
and session lifecycle.

Metric Types:
    Counters (always increase):
        - remote_calls_total: Remote calls by method and status
        - errors_total: Tagged failures by kind and component
        - batch_lookups_total: Individual secondary lookups by status
        - feed_posts_dropped_total: Feed posts dropped for unresolved authors
        - optimistic_mutations_total: Toggle outcomes by action
        - session_logins_total: Login attempts by privacy mode and status

    Gauges (can go up or down):
        - active_sessions: Currently authenticated sessions
        - mutations_in_flight: Optimistic mutations awaiting the server

    Histograms (track distributions):
        - remote_call_duration_seconds: Gateway round-trip latency

Usage:
    ```python
    from decentra.metrics import remote_calls_total

    remote_calls_total.labels(method="like_post", status="success").inc()
    ```

References:
    - Prometheus Python Client: https://github.com/prometheus/client_python
    - Best Practices: https://prometheus.io/docs/practices/instrumentation/
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Custom registry for explicit metric control
registry = CollectorRegistry()

# Latency buckets (seconds) spanning fast reads up to the 15s call ceiling
REMOTE_LATENCY_BUCKETS = (
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    15.0,
)


# ========== COUNTER METRICS ==========

remote_calls_total = Counter(
    "remote_calls_total",
    "Total number of remote calls issued through the gateway",
    labelnames=["method", "status"],
    registry=registry,
)
"""Counter for gateway calls.

Labels:
    method: Backend method name (e.g., "get_user_feed", "like_post")
    status: "ok", "err" (remote rejection) or "error" (transport fault)
"""

errors_total = Counter(
    "errors_total",
    "Total number of tagged failures returned to callers",
    labelnames=["kind", "component"],
    registry=registry,
)
"""Counter for failures by ErrorKind and component ("feed", "service", ...)."""

batch_lookups_total = Counter(
    "batch_lookups_total",
    "Individual secondary lookups performed by batch resolution",
    labelnames=["status"],
    registry=registry,
)
"""Counter for batch lookups.

Labels:
    status: "resolved", "missing" (no entity) or "failed" (lookup raised/Err)
"""

feed_posts_dropped_total = Counter(
    "feed_posts_dropped_total",
    "Feed posts dropped because their author could not be resolved",
    registry=registry,
)

optimistic_mutations_total = Counter(
    "optimistic_mutations_total",
    "Optimistic toggle outcomes",
    labelnames=["action", "outcome"],
    registry=registry,
)
"""Counter for optimistic toggles.

Labels:
    action: "like", "unlike", "follow", "unfollow"
    outcome: "committed", "rolled_back", "resynced", "rejected"
"""

session_logins_total = Counter(
    "session_logins_total",
    "Login attempts by privacy mode",
    labelnames=["privacy_mode", "status"],
    registry=registry,
)


# ========== GAUGE METRICS ==========

active_sessions = Gauge(
    "active_sessions",
    "Currently authenticated sessions held by this process",
    registry=registry,
)

mutations_in_flight = Gauge(
    "mutations_in_flight",
    "Optimistic mutations awaiting a server response",
    registry=registry,
)


# ========== HISTOGRAM METRICS ==========

remote_call_duration_seconds = Histogram(
    "remote_call_duration_seconds",
    "Gateway round-trip latency in seconds",
    labelnames=["method"],
    buckets=REMOTE_LATENCY_BUCKETS,
    registry=registry,
)


def generate_metrics_output() -> bytes:
    """Render all registered metrics in the Prometheus text format.

    Returns:
        Metrics exposition as bytes
    """
    return generate_latest(registry)


__all__ = [
    "registry",
    "remote_calls_total",
    "errors_total",
    "batch_lookups_total",
    "feed_posts_dropped_total",
    "optimistic_mutations_total",
    "session_logins_total",
    "active_sessions",
    "mutations_in_flight",
    "remote_call_duration_seconds",
    "generate_metrics_output",
]
