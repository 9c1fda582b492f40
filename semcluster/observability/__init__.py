"""Observability module for metrics and monitoring."""

from semcluster.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    track_clustering_run,
    track_embedding_request,
    track_workspace_event,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "track_clustering_run",
    "track_embedding_request",
    "track_workspace_event",
]
