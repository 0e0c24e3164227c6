"""
Prometheus metrics for production monitoring.

Provides instrumentation for the upload pipeline with standardized
Prometheus metrics: outcomes per invocation, per-stage latency, and
success/failure counts for every external collaborator.

Metrics Provided:
    - image_pipeline_runs_total: Counter of invocations by status
    - image_pipeline_errors_total: Counter of fatal errors by error code
    - image_pipeline_stage_duration_seconds: Histogram of stage latency
    - image_download_requests_total: Counter of remote fetches by status
    - image_resize_requests_total: Counter of resize filter runs by status
    - image_upload_requests_total: Counter of store uploads by status/backend
    - image_cleanup_warnings_total: Counter of temp files that could not be removed
    - image_pipeline_active_runs: Gauge of invocations in flight

Usage:
    from image_uploader.utils.metrics import get_metrics

    metrics = get_metrics()
    with metrics.track_stage("uploading"):
        ...

    # Start metrics server:
    python -m image_uploader.utils.metrics --port 9090
"""

import os
from contextlib import nullcontext
from typing import Any, ContextManager, Optional

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    REGISTRY,
    CollectorRegistry,
    start_http_server,
)

from image_uploader.utils.logging import get_logger

# Module-level logger
logger = get_logger(__name__)


class PrometheusMetrics:
    """
    Centralized Prometheus metrics for the pipeline.

    When disabled every recording method is a no-op, so call sites never
    need to check.

    Example:
        >>> metrics = PrometheusMetrics(registry=CollectorRegistry())
        >>> metrics.record_run("success")
    """

    def __init__(self, enabled: bool = True, registry: Optional[CollectorRegistry] = None) -> None:
        """
        Initialize metrics collectors.

        Args:
            enabled: Whether metrics collection is enabled
            registry: Custom Prometheus registry (uses default if None)
        """
        self.enabled = enabled
        self.registry = registry if registry is not None else REGISTRY

        if not self.enabled:
            logger.info("Metrics collection disabled")
            return

        self.pipeline_runs = Counter(
            name="image_pipeline_runs_total",
            documentation="Total number of pipeline invocations",
            labelnames=["status"],  # success, failure
            registry=self.registry,
        )

        self.pipeline_errors = Counter(
            name="image_pipeline_errors_total",
            documentation="Fatal pipeline errors by error code",
            labelnames=["code"],
            registry=self.registry,
        )

        self.stage_duration = Histogram(
            name="image_pipeline_stage_duration_seconds",
            documentation="Time spent in each pipeline stage",
            labelnames=["stage"],  # acquiring, resizing, uploading, cleaning_up
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
            registry=self.registry,
        )

        self.download_requests = Counter(
            name="image_download_requests_total",
            documentation="Remote source fetches by status",
            labelnames=["status"],  # success, bad_status, empty, error
            registry=self.registry,
        )

        self.resize_requests = Counter(
            name="image_resize_requests_total",
            documentation="Resize filter runs by status",
            labelnames=["status"],  # success, failure
            registry=self.registry,
        )

        self.upload_requests = Counter(
            name="image_upload_requests_total",
            documentation="Object store uploads by status and backend",
            labelnames=["status", "backend"],
            registry=self.registry,
        )

        self.cleanup_warnings = Counter(
            name="image_cleanup_warnings_total",
            documentation="Temp files that could not be removed",
            registry=self.registry,
        )

        self.active_runs = Gauge(
            name="image_pipeline_active_runs",
            documentation="Pipeline invocations currently in flight",
            registry=self.registry,
        )

        logger.debug("PrometheusMetrics initialized with all collectors")

    def track_stage(self, stage: str) -> ContextManager[Any]:
        """Context manager timing one pipeline stage."""
        if not self.enabled:
            return nullcontext()
        return self.stage_duration.labels(stage=stage).time()

    def track_active(self) -> ContextManager[Any]:
        """Context manager counting an invocation as in flight."""
        if not self.enabled:
            return nullcontext()
        return self.active_runs.track_inprogress()

    def record_run(self, status: str, error_code: Optional[str] = None) -> None:
        if not self.enabled:
            return
        self.pipeline_runs.labels(status=status).inc()
        if error_code:
            self.pipeline_errors.labels(code=error_code).inc()

    def record_download(self, status: str) -> None:
        if not self.enabled:
            return
        self.download_requests.labels(status=status).inc()

    def record_resize(self, status: str) -> None:
        if not self.enabled:
            return
        self.resize_requests.labels(status=status).inc()

    def record_upload(self, status: str, backend: str = "unknown") -> None:
        if not self.enabled:
            return
        self.upload_requests.labels(status=status, backend=backend).inc()

    def record_cleanup_warning(self) -> None:
        if not self.enabled:
            return
        self.cleanup_warnings.inc()


# Global metrics instance (singleton)
_metrics_instance: Optional[PrometheusMetrics] = None


def get_metrics() -> PrometheusMetrics:
    """
    Get global metrics instance (singleton).

    Collection can be switched off with METRICS_ENABLED=false.
    """
    global _metrics_instance

    if _metrics_instance is None:
        enabled = os.getenv("METRICS_ENABLED", "true").lower() == "true"
        _metrics_instance = PrometheusMetrics(enabled=enabled)

    return _metrics_instance


def start_metrics_server(port: int = 9090, addr: str = "0.0.0.0") -> None:
    """
    Start the Prometheus metrics HTTP server in a background thread.

    Args:
        port: Port to listen on (default: 9090)
        addr: Address to bind to (default: 0.0.0.0 - all interfaces)
    """
    logger.info(f"Starting Prometheus metrics server on {addr}:{port}")
    start_http_server(port=port, addr=addr)
    logger.info(f"Metrics server running at http://{addr}:{port}/metrics")


if __name__ == "__main__":
    import argparse
    import signal

    parser = argparse.ArgumentParser(description="Image upload pipeline metrics server")
    parser.add_argument("--port", type=int, default=9090, help="Metrics server port (default: 9090)")
    parser.add_argument("--addr", type=str, default="0.0.0.0", help="Address to bind to")
    args = parser.parse_args()

    start_metrics_server(port=args.port, addr=args.addr)
    try:
        signal.pause()
    except KeyboardInterrupt:
        logger.info("Metrics server shutting down")
