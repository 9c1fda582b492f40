"""Prometheus metrics for the clustering service.

Provides metrics instrumentation for:
- HTTP request latency and counts
- Batch clustering runs (duration, merges, cluster counts)
- Workspace membership decisions and admission similarity
- Embedding request latency
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from semcluster.logging_config import get_logger

logger = get_logger(__name__)

# HTTP Request Metrics
HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Clustering Metrics
CLUSTERING_RUN_DURATION = Histogram(
    "clustering_run_duration_seconds",
    "Batch clustering duration in seconds",
    ["status"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
)

CLUSTERING_RUNS_TOTAL = Counter(
    "clustering_runs_total",
    "Total batch clustering runs",
    ["status"],
)

CLUSTERING_ITEMS = Histogram(
    "clustering_items",
    "Items per clustering run",
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000],
)

CLUSTERING_CLUSTERS_PRODUCED = Histogram(
    "clustering_clusters_produced",
    "Clusters produced per successful run",
    buckets=[1, 2, 5, 10, 25, 50, 100, 250, 500],
)

CLUSTERING_MERGES_TOTAL = Counter(
    "clustering_merges_total",
    "Total cluster merges performed",
)

# Workspace Metrics
WORKSPACE_EVENTS_TOTAL = Counter(
    "workspace_events_total",
    "Workspace membership updates by outcome",
    ["event_type", "decision"],
)

WORKSPACE_ADMISSION_SIMILARITY = Histogram(
    "workspace_admission_similarity",
    "Similarity of candidate items to the workspace centroid",
    buckets=[-0.5, 0.0, 0.25, 0.5, 0.6, 0.7, 0.75, 0.8, 0.85, 0.9, 0.95, 1.0],
)

# Embedding Metrics
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding request duration in seconds",
    ["model", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

EMBEDDING_REQUEST_TOTAL = Counter(
    "embedding_requests_total",
    "Total embedding requests",
    ["model", "status"],
)

EMBEDDING_BATCH_SIZE = Histogram(
    "embedding_batch_size",
    "Embedding batch size",
    ["model"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    def __init__(self, app: ASGIApp) -> None:
        """Initialize the middleware."""
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process request and collect metrics."""
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        endpoint = self._normalize_endpoint(request.url.path)

        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).observe(duration)

        HTTP_REQUEST_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        if path.startswith("/health"):
            return "/health"
        # Workspace ids and item ids are unbounded; keep the resource name
        if path.startswith("/api/v1/"):
            parts = path.split("/")
            if len(parts) >= 4:
                return f"/api/v1/{parts[3]}"
        return path


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_clustering_run(
    duration: float,
    status: str,
    item_count: int,
    cluster_count: int = 0,
    merges: int = 0,
) -> None:
    """Track a batch clustering run.

    Args:
        duration: Run duration in seconds.
        status: "success" or the lower-cased error code name.
        item_count: Number of input items.
        cluster_count: Number of clusters produced.
        merges: Number of merges performed.
    """
    CLUSTERING_RUN_DURATION.labels(status=status).observe(duration)
    CLUSTERING_RUNS_TOTAL.labels(status=status).inc()
    CLUSTERING_ITEMS.observe(item_count)

    if status == "success":
        CLUSTERING_CLUSTERS_PRODUCED.observe(cluster_count)
        CLUSTERING_MERGES_TOTAL.inc(merges)


def track_workspace_event(
    event_type: str,
    decision: str,
    similarity: float | None = None,
) -> None:
    """Track a workspace membership decision.

    Args:
        event_type: Change that triggered the update (created, deleted, ...).
        decision: Outcome of the update (admitted, rejected, removed, ...).
        similarity: Candidate similarity to the centroid, when computed.
    """
    WORKSPACE_EVENTS_TOTAL.labels(event_type=event_type, decision=decision).inc()
    if similarity is not None:
        WORKSPACE_ADMISSION_SIMILARITY.observe(similarity)


def track_embedding_request(
    model: str,
    duration: float,
    batch_size: int,
    success: bool = True,
) -> None:
    """Track embedding request metrics.

    Args:
        model: Embedding model name.
        duration: Request duration in seconds.
        batch_size: Number of texts in the batch.
        success: Whether the request succeeded.
    """
    status = "success" if success else "error"

    EMBEDDING_REQUEST_DURATION.labels(model=model, status=status).observe(duration)
    EMBEDDING_REQUEST_TOTAL.labels(model=model, status=status).inc()
    EMBEDDING_BATCH_SIZE.labels(model=model).observe(batch_size)
