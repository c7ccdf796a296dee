"""
Prometheus metrics instrumentation for the companion backend.

This module provides metrics tracking for:
- Request count by route and status
- Generation latency by model
- TTS and avatar render latency
- Error count by service and kind
- Active session count

Usage:
    from metrics import track_generation_call, track_error

    with track_generation_call(model="gemini-2.0-flash-001"):
        # ... call Gemini ...
        pass

    track_error("generation", "rate_limited")
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Gauge, Histogram

LATENCY_BUCKETS = (0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, float("inf"))

# === COUNTERS ===

requests_total = Counter(
    "companion_requests_total",
    "Total number of HTTP requests processed",
    ["route", "status"],
)

errors_total = Counter(
    "companion_errors_total",
    "Total number of external service errors",
    ["service", "kind"],
)

# === HISTOGRAMS ===

generation_latency_seconds = Histogram(
    "companion_generation_latency_seconds",
    "Time taken for text-generation calls",
    ["model"],
    buckets=LATENCY_BUCKETS,
)

tts_latency_seconds = Histogram(
    "companion_tts_latency_seconds",
    "Time taken for text-to-speech synthesis",
    buckets=LATENCY_BUCKETS,
)

render_latency_seconds = Histogram(
    "companion_render_latency_seconds",
    "Time taken for talking-head render and status calls",
    ["operation"],
    buckets=LATENCY_BUCKETS,
)

# === GAUGES ===

active_sessions_gauge = Gauge(
    "companion_active_sessions",
    "Number of sessions currently holding history",
)


@contextmanager
def _observe(histogram, **labels: str) -> Generator[None, None, None]:
    start_time = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start_time
        target = histogram.labels(**labels) if labels else histogram
        target.observe(duration)


@contextmanager
def track_generation_call(model: str) -> Generator[None, None, None]:
    """
    Context manager to track text-generation latency.

    Args:
        model: The model id (e.g., "gemini-2.0-flash-001")
    """
    with _observe(generation_latency_seconds, model=model):
        yield


@contextmanager
def track_tts_call() -> Generator[None, None, None]:
    """Context manager to track TTS synthesis latency."""
    with _observe(tts_latency_seconds):
        yield


@contextmanager
def track_render_call(operation: str) -> Generator[None, None, None]:
    """
    Context manager to track avatar render latency.

    Args:
        operation: "create" or "status"
    """
    with _observe(render_latency_seconds, operation=operation):
        yield


def track_request(route: str, status: int) -> None:
    """Count a finished HTTP request."""
    requests_total.labels(route=route, status=str(status)).inc()


def track_error(service: str, kind: str) -> None:
    """
    Track an external service failure.

    Args:
        service: "generation", "speech" or "avatar"
        kind: ErrorKind value (e.g. "timeout")
    """
    errors_total.labels(service=service, kind=kind).inc()


def update_active_sessions(count: int) -> None:
    """Update the active sessions gauge."""
    active_sessions_gauge.set(count)
