"""
Tests for Prometheus Metrics

Ensures metrics are properly recorded and exposed.
"""

from prometheus_client import REGISTRY

from portfolio_ai.services.prometheus_metrics import get_metrics


def sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_metrics_service_initialization():
    """Test that metrics service initializes correctly."""
    metrics = get_metrics()

    assert metrics is not None
    assert hasattr(metrics, 'media_analyzed_total')
    assert hasattr(metrics, 'errors_total')
    assert hasattr(metrics, 'active_slots')
    assert hasattr(metrics, 'provider_request_duration')


def test_record_media_analyzed():
    """Test recording media outcomes."""
    metrics = get_metrics()
    labels = {"kind": "image", "outcome": "success"}
    before = sample('portfolio_media_analyzed_total', labels)

    metrics.record_media_analyzed("image", "success")
    metrics.record_media_analyzed("image", "success")
    metrics.record_media_analyzed("video", "failed")

    assert sample('portfolio_media_analyzed_total', labels) == before + 2


def test_record_provider_call_with_duration():
    """Test that provider calls feed both the counter and the histogram."""
    metrics = get_metrics()
    before_calls = sample('portfolio_provider_calls_total', {"operation": "embed", "status": "success"})
    before_count = sample('portfolio_provider_request_duration_seconds_count', {"operation": "embed"})

    metrics.record_provider_call("embed", "success", 0.25)
    metrics.record_provider_call("embed", "success")

    assert sample('portfolio_provider_calls_total', {"operation": "embed", "status": "success"}) == before_calls + 2
    assert sample('portfolio_provider_request_duration_seconds_count', {"operation": "embed"}) == before_count + 1


def test_record_aggregation_exit():
    metrics = get_metrics()
    labels = {"level": "portfolio", "reason": "sufficient"}
    before = sample('portfolio_aggregation_exits_total', labels)

    metrics.record_aggregation_exit("portfolio", "sufficient")

    assert sample('portfolio_aggregation_exits_total', labels) == before + 1


def test_update_slot_metrics():
    """Test updating rate limiter gauges."""
    metrics = get_metrics()

    metrics.update_slot_metrics("video", active=2, wait_seconds=0.5)
    assert sample('portfolio_rate_limiter_active_slots', {"content_class": "video"}) == 2

    metrics.update_slot_metrics("video", active=0)
    assert sample('portfolio_rate_limiter_active_slots', {"content_class": "video"}) == 0


def test_record_error():
    """Test recording errors."""
    metrics = get_metrics()
    labels = {"error_type": "project_failed", "component": "project_aggregator"}
    before = sample('portfolio_analysis_errors_total', labels)

    metrics.record_error("project_failed", "project_aggregator")

    assert sample('portfolio_analysis_errors_total', labels) == before + 1


def test_set_build_info():
    """Test setting build information."""
    metrics = get_metrics()

    metrics.set_build_info(
        version="0.1.0",
        commit="abc123def",
        build_date="2026-01-15"
    )

    assert sample('portfolio_ai_build_info', {
        "version": "0.1.0", "commit": "abc123def", "build_date": "2026-01-15"
    }) == 1.0


def test_singleton_pattern():
    """Test that get_metrics returns singleton instance."""
    metrics1 = get_metrics()
    metrics2 = get_metrics()

    assert metrics1 is metrics2
