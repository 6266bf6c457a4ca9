"""
Prometheus Metrics Service

Provides instrumentation for the analysis pipeline:
- Counters for media outcomes, provider calls and aggregation exits
- Gauges for rate limiter slots in use
- Histograms for provider latency and slot wait times
"""

from prometheus_client import Counter, Gauge, Histogram, Info
from typing import Optional
from portfolio_ai.core.logging_config import get_logger

logger = get_logger(__name__)


class PrometheusMetricsService:
    """
    Centralized Prometheus metrics for the portfolio analysis pipeline.
    """

    def __init__(self):
        """Initialize all metrics."""

        # ===== COUNTERS (cumulative) =====

        self.media_analyzed_total = Counter(
            'portfolio_media_analyzed_total',
            'Total number of media items run through analysis',
            ['kind', 'outcome']  # outcome: success, failed, skipped
        )

        self.errors_total = Counter(
            'portfolio_analysis_errors_total',
            'Total number of errors encountered',
            ['error_type', 'component']
        )

        self.provider_calls_total = Counter(
            'portfolio_provider_calls_total',
            'Total number of AI provider calls',
            ['operation', 'status']  # operation: analyze_media, generate_text, embed
        )

        self.aggregation_exits_total = Counter(
            'portfolio_aggregation_exits_total',
            'How aggregation waits ended',
            ['level', 'reason']  # level: project, portfolio
        )

        self.jobs_finished_total = Counter(
            'portfolio_analysis_jobs_finished_total',
            'Analysis jobs that reached a terminal state',
            ['status']
        )

        # ===== GAUGES (current value) =====

        self.active_slots = Gauge(
            'portfolio_rate_limiter_active_slots',
            'Rate limiter slots currently held',
            ['content_class']
        )

        # ===== HISTOGRAMS (distributions) =====

        self.provider_request_duration = Histogram(
            'portfolio_provider_request_duration_seconds',
            'Time taken for AI provider requests',
            ['operation'],
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0]
        )

        self.slot_wait_time = Histogram(
            'portfolio_slot_wait_time_seconds',
            'Time spent waiting for a rate limiter slot',
            ['content_class'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 60.0]
        )

        # ===== INFO (static metadata) =====

        self.build_info = Info(
            'portfolio_ai_build',
            'Build information for the portfolio analysis service'
        )

        logger.info("PrometheusMetricsService initialized with all metrics")

    # ===== HELPER METHODS =====

    def record_media_analyzed(self, kind: str, outcome: str):
        """
        Record a finished media analysis.

        Args:
            kind: image or video
            outcome: success, failed, or skipped
        """
        self.media_analyzed_total.labels(kind=kind, outcome=outcome).inc()

    def record_error(self, error_type: str, component: str):
        self.errors_total.labels(error_type=error_type, component=component).inc()

    def record_provider_call(self, operation: str, status: str, duration_seconds: Optional[float] = None):
        """
        Record an AI provider call.

        Args:
            operation: analyze_media, generate_text, or embed
            status: success or failure
            duration_seconds: Wall time of the call, if measured
        """
        self.provider_calls_total.labels(operation=operation, status=status).inc()
        if duration_seconds is not None:
            self.provider_request_duration.labels(operation=operation).observe(duration_seconds)

    def record_aggregation_exit(self, level: str, reason: str):
        self.aggregation_exits_total.labels(level=level, reason=reason).inc()

    def record_job_finished(self, status: str):
        self.jobs_finished_total.labels(status=status).inc()

    def update_slot_metrics(self, content_class: str, active: int, wait_seconds: Optional[float] = None):
        """
        Update rate limiter gauges.

        Args:
            content_class: image, video, or text
            active: Slots currently held for the class
            wait_seconds: Wait time of the acquisition that triggered the update
        """
        self.active_slots.labels(content_class=content_class).set(active)
        if wait_seconds is not None:
            self.slot_wait_time.labels(content_class=content_class).observe(wait_seconds)

    def set_build_info(self, version: str, commit: str = "", build_date: str = ""):
        self.build_info.info({
            'version': version,
            'commit': commit,
            'build_date': build_date
        })


# Global singleton instance
_global_metrics: Optional[PrometheusMetricsService] = None


def get_metrics() -> PrometheusMetricsService:
    """
    Get or create global metrics service instance.

    Returns:
        PrometheusMetricsService instance
    """
    global _global_metrics

    if _global_metrics is None:
        _global_metrics = PrometheusMetricsService()

    return _global_metrics
