"""
Prometheus Metrics for Observability

Tracks job submissions, processor runs and status polling.
Exposes /metrics endpoint for Prometheus scraping.
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
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Submitted jobs by outcome of the upload request
jobs_total = Counter(
    "bgbatch_jobs_total",
    "Total number of batch jobs by submission outcome",
    labelnames=["status"]
)

# Staged files
staged_files_total = Counter(
    "bgbatch_staged_files_total",
    "Total number of files staged into job input directories"
)

# Processor concurrency
active_processors_gauge = Gauge(
    "bgbatch_active_processors",
    "Number of external processor instances currently running"
)

waiting_processors_gauge = Gauge(
    "bgbatch_waiting_processors",
    "Number of submissions waiting for a processor slot"
)

# Processor wall-clock time
processor_duration_seconds = Histogram(
    "bgbatch_processor_duration_seconds",
    "Wall-clock time of one external processor run",
    labelnames=["status"],
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0]
)

# Status polling
status_queries_total = Counter(
    "bgbatch_status_queries_total",
    "Total number of status queries by reported status",
    labelnames=["status"]
)

# HTTP
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0]
)

app_info = Info(
    "bgbatch_app",
    "Application information"
)


def set_app_info(version: str, environment: str):
    """Set application info metric."""
    app_info.info({
        "version": version,
        "environment": environment
    })


@contextmanager
def track_processor_run():
    """
    Context manager around one processor run.

    Usage:
        with track_processor_run():
            await invoker.run(...)
    """
    start = time.time()
    status = "success"
    active_processors_gauge.inc()
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        active_processors_gauge.dec()
        processor_duration_seconds.labels(status=status).observe(time.time() - start)


def record_job_submission(status: str):
    """Record the outcome of an upload request (accepted, rejected, failed)."""
    jobs_total.labels(status=status).inc()


def record_status_query(status: str):
    """Record a status query result."""
    status_queries_total.labels(status=status).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get Prometheus content type."""
    return CONTENT_TYPE_LATEST
