"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    SUBSCRIPTION = "subscription"


class KeyHubMetrics:
    """
    Centralized metrics for the Key Hub API.

    Covers:
    - HTTP requests (rate, duration, in progress)
    - Copy attempts (granted, repeat, denied per tier)
    - Mirror sync operations (success/failure per operation)
    - Rate limiter rejections
    - Errors
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "keyhub_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "keyhub_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "keyhub_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "keyhub_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Copy Quota Metrics
        # ====================================================================
        self.copies_total = Counter(
            "keyhub_copies_total",
            "Copy attempts by outcome",
            ["outcome", MetricLabels.SUBSCRIPTION],
        )

        self.quota_resets_total = Counter(
            "keyhub_quota_resets_total",
            "Copy windows reset after expiry",
        )

        # ====================================================================
        # Mirror Metrics
        # ====================================================================
        self.mirror_operations_total = Counter(
            "keyhub_mirror_operations_total",
            "Realtime mirror operations",
            [MetricLabels.OPERATION, "success"],
        )

        # ====================================================================
        # Rate Limit Metrics
        # ====================================================================
        self.rate_limited_total = Counter(
            "keyhub_rate_limited_total",
            "Requests rejected by a rate limiter",
            ["limiter"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "keyhub_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_copy(self, outcome: str, subscription: str) -> None:
        """Record a copy attempt: granted, repeat or denied."""
        self.copies_total.labels(outcome=outcome, subscription=subscription).inc()

    def record_mirror_operation(self, operation: str, success: bool) -> None:
        """Record a mirror push/update/remove."""
        self.mirror_operations_total.labels(operation=operation, success=str(success)).inc()

    def record_rate_limited(self, limiter: str) -> None:
        self.rate_limited_total.labels(limiter=limiter).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = KeyHubMetrics()
