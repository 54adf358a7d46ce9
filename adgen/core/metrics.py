"""
Prometheus Metrics for Observability

Tracks pipeline stage latency, backend calls, job polling and point usage.
Exposes /api/v1/metrics endpoint for Prometheus scraping.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Pipeline Latency - Per Stage
pipeline_latency_seconds = Histogram(
    "pipeline_stage_latency_seconds",
    "Time spent in each pipeline stage",
    labelnames=["stage", "status"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0]
)

# Total Pipeline Duration
pipeline_total_duration = Histogram(
    "pipeline_total_duration_seconds",
    "Total time for a complete pipeline run",
    labelnames=["status"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0]
)

# Runs Counter
runs_total = Counter(
    "adgen_pipeline_runs_total",
    "Total number of pipeline runs finished",
    labelnames=["status", "failure_stage"]
)

# Active Runs
active_runs_gauge = Gauge(
    "adgen_active_runs",
    "Number of pipeline runs currently in flight"
)

# Backend API Calls
backend_api_calls_total = Counter(
    "backend_api_calls_total",
    "Total number of backend API calls",
    labelnames=["service", "http_status"]
)

# Job polling
job_poll_attempts = Histogram(
    "job_poll_attempts",
    "Status fetches needed per polled job",
    labelnames=["job_type"],
    buckets=[1, 2, 3, 5, 10, 15, 20, 30]
)

# Points
points_deducted_total = Counter(
    "points_deducted_total",
    "Total points deducted for pipeline runs"
)

# API Request Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 60.0, 120.0]
)

# Application Info
app_info = Info(
    "adgen_app",
    "Application information"
)


# =============================================================================
# Helper Functions
# =============================================================================

def set_app_info(version: str, environment: str):
    """Set application info metric."""
    app_info.info({
        "version": version,
        "environment": environment
    })


@contextmanager
def track_stage_latency(stage: str):
    """
    Context manager to track stage latency.

    Usage:
        with track_stage_latency("UPLOADING"):
            # do work
    """
    start = time.time()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.time() - start
        pipeline_latency_seconds.labels(stage=stage, status=status).observe(duration)


def record_backend_call(service: str, http_status) -> None:
    """Record a backend API call; http_status is "error" for transport failures."""
    backend_api_calls_total.labels(
        service=service,
        http_status=str(http_status)
    ).inc()


def record_run_started():
    active_runs_gauge.inc()


def record_run_finished(status: str, duration_seconds: float, failure_stage: str = "none"):
    """Record a run reaching a terminal state."""
    runs_total.labels(status=status, failure_stage=failure_stage).inc()
    pipeline_total_duration.labels(status=status).observe(duration_seconds)
    active_runs_gauge.dec()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
