"""Batch similarity clustering."""

from semcluster.clustering.engine import ClusteringEngine
from semcluster.clustering.models import Cluster, Item

__all__ = [
    "Cluster",
    "ClusteringEngine",
    "Item",
]
