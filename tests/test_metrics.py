"""
Tests for Prometheus metric helpers.
"""

import pytest
from prometheus_client import REGISTRY

from metrics import (
    track_error,
    track_generation_call,
    track_render_call,
    track_request,
    update_active_sessions,
)


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_track_request():
    before = sample("companion_requests_total", route="/api/chat", status="200")

    track_request("/api/chat", 200)

    assert sample("companion_requests_total", route="/api/chat", status="200") == before + 1


def test_track_error():
    before = sample("companion_errors_total", service="speech", kind="timeout")

    track_error("speech", "timeout")

    assert sample("companion_errors_total", service="speech", kind="timeout") == before + 1


def test_generation_latency_observed_on_failure():
    before = sample("companion_generation_latency_seconds_count", model="metrics-test")

    with pytest.raises(RuntimeError):
        with track_generation_call("metrics-test"):
            raise RuntimeError("boom")

    assert sample("companion_generation_latency_seconds_count", model="metrics-test") == before + 1


def test_render_latency_by_operation():
    before = sample("companion_render_latency_seconds_count", operation="status")

    with track_render_call("status"):
        pass

    assert sample("companion_render_latency_seconds_count", operation="status") == before + 1


def test_active_sessions_gauge():
    update_active_sessions(7)
    assert sample("companion_active_sessions") == 7
